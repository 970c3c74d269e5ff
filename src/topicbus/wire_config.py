# src/topicbus/wire_config.py
from __future__ import annotations
import importlib
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

try:
    import yaml  # PyYAML
except ImportError as e:
    raise RuntimeError("Please install PyYAML: pip install pyyaml") from e

from topicbus.core import log
from topicbus.core.bus import InProcEventBus
from topicbus.core.router import Router

Target = Union[Router, InProcEventBus]

_l = log.get("wire")


def _imp(ref: str) -> Any:
    """'pkg.mod:attr' (or 'pkg.mod.attr') -> object."""
    if ":" in ref:
        module, _, attr = ref.partition(":")
    else:
        module, _, attr = ref.rpartition(".")
    if not module or not attr:
        raise ValueError(f"bad handler reference {ref!r}, expected 'module:callable'")
    obj: Any = importlib.import_module(module)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _mk_handler(entry: Dict[str, Any]) -> Callable:
    target = _imp(entry["handler"])
    args = entry.get("args")
    # with args the reference is a factory: factory(**args) -> handler
    if args is not None:
        return target(**args)
    return target


def wire(target: Target, subscriptions: List[Dict[str, Any]]) -> List[Callable]:
    """Subscribe every entry ({pattern, handler, args?}) on target, in file order."""
    handlers = []
    for i, entry in enumerate(subscriptions or []):
        for key in ("pattern", "handler"):
            if key not in entry:
                raise ValueError(f"subscriptions[{i}] is missing {key!r}")
        fn = _mk_handler(entry)
        target.subscribe(str(entry["pattern"]), fn)
        handlers.append(fn)
    return handlers


def build_from_dict(data: Dict[str, Any]) -> Tuple[Target, List[Callable]]:
    bus_cfg = data.get("bus", {}) or {}
    name = str(bus_cfg.get("name", "bus"))
    if bus_cfg.get("threaded", False):
        target: Target = InProcEventBus(name=name, daemon=bool(bus_cfg.get("daemon", True)))
    else:
        target = Router(name=f"{name}.router")
    handlers = wire(target, data.get("subscriptions", []))
    _l.info("wired %d subscription(s) on %s", len(handlers), type(target).__name__)
    return target, handlers


def build_from_yaml(yaml_path: str) -> Tuple[Target, List[Callable]]:
    """Read a wiring YAML and return (router or bus, handlers) ready to use."""
    data = yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8")) or {}
    return build_from_dict(data)
