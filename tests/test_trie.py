from topicbus.core.trie import HASH, STAR, TopicTrie, split_pattern, split_topic


def test_split_pattern_keeps_empty_segments():
    assert split_pattern("a..b") == ["a", "", "b"]
    assert split_pattern("") == [""]


def test_split_topic_drops_empty_segments():
    assert split_topic("a..b.") == ("a", "b")
    assert split_topic("") == ()


def test_add_creates_nodes_lazily_with_increasing_ids():
    trie = TopicTrie()
    assert len(trie) == 1

    b = trie.add("a.b")
    c = trie.add("a.c")
    assert (b.id, c.id) == (2, 3)
    assert trie.node_count == 4

    # existing path: no new nodes, same identity
    assert trie.add("a.b") is b
    assert len(trie) == 4


def test_wildcards_are_ordinary_edges():
    trie = TopicTrie()
    trie.add("*.#")
    assert STAR in trie.root.children
    assert HASH in trie.root.children[STAR].children


def test_match_skips_nodes_without_handlers():
    trie = TopicTrie()
    trie.add("a.b")
    assert trie.match(("a",)) == []
    assert trie.match(("a", "b")) == []

    node = trie.add("a.b")
    node.handlers.append(object())
    assert trie.match(("a", "b")) == [node]


def test_match_returns_each_node_once():
    trie = TopicTrie()
    node = trie.add("#.#.#")
    node.handlers.append(object())
    assert trie.match(("x", "y", "z")) == [node]
