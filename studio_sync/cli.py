#!/usr/bin/env python3
"""
studio-sync CLI — 視覺編輯器 ↔ TSX 元件檔雙向同步

  studio-sync parse src/pages/index.tsx             # TSX → 元件樹 JSON
  studio-sync tree src/pages/index.tsx              # 預覽元件樹
  studio-sync write src/pages/index.tsx --state s.json [--dry-run]   # 元件樹 → TSX
  studio-sync watch                                 # 監聽 src 變更並重新解析
"""

import argparse
import asyncio
import json
import sys
import threading
import time

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import __version__
from .config import DEFAULT_CONFIG_PATH, get_debounce, get_indent_width, get_src_root, load_config
from .errors import StudioSyncError
from .models import (
    FragmentState,
    RepeaterState,
    component_state_to_dict,
    file_metadata_from_dict,
    file_metadata_to_dict,
    page_state_from_dict,
)
from .sync import ComponentFileSync, build_registry
from .tree_helpers import walk
from .writer import FormatOptions


def _src_root(args, config: dict) -> str:
    return getattr(args, "src_root", None) or get_src_root(config)


def _make_sync(args, config: dict) -> ComponentFileSync:
    registry = build_registry(_src_root(args, config))
    return ComponentFileSync(registry, options=FormatOptions(indent_width=get_indent_width(config)))


def _node_label(state) -> str:
    if isinstance(state, FragmentState):
        return "<>"
    if isinstance(state, RepeaterState):
        template = state.repeated_component
        return f"{{{state.list_expression}.map}} → <{template.component_name}> [{template.kind.value}]"
    props = " ".join(state.props)
    label = f"<{state.component_name}>" + (f" {props}" if props else "")
    return f"{label} [{state.kind.value}]"


def preview_component_tree(tree: list) -> str:
    return "\n".join("  " * depth + _node_label(state) for depth, state in walk(tree))


def cmd_parse(args, config: dict):
    """Parse: TSX → 元件樹 + metadata（JSON 輸出）."""
    result = _make_sync(args, config).load(args.file)
    payload = {
        "componentTree": [component_state_to_dict(s) for s in result.component_tree],
        "fileMetadata": file_metadata_to_dict(result.file_metadata),
        "cssImports": result.css_imports,
        "filepath": args.file,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def cmd_tree(args, config: dict):
    """預覽元件樹."""
    result = _make_sync(args, config).load(args.file)
    print(f"🌲 {args.file}")
    if result.component_tree:
        print(preview_component_tree(result.component_tree))
    print(f"\nTotal nodes: {len(result.component_tree)}")


def cmd_write(args, config: dict):
    """Write: 依 PageState JSON 改寫 TSX（--dry-run 只顯示 diff）."""
    with open(args.state, "r", encoding="utf-8") as f:
        data = json.load(f)
    page = page_state_from_dict(data)
    file_metadata = file_metadata_from_dict(data["fileMetadata"]) if data.get("fileMetadata") else None
    sync = _make_sync(args, config)

    if args.dry_run:
        diff = sync.diff(args.file, page, file_metadata=file_metadata)
        if not diff:
            print("   ✅ No changes.")
            return
        print(diff, end="" if diff.endswith("\n") else "\n")
        print("\n   💡 移除 --dry-run 以寫入檔案。")
        return

    if sync.update_file(args.file, page, file_metadata=file_metadata):
        print(f"   ✅ Updated {args.file}")
    else:
        print("   ✅ No changes.")


_WATCHED_EXTENSIONS = (".tsx",)


class ChangeHandler(FileSystemEventHandler):
    """檔案變更事件處理器，帶 debounce 防抖。"""

    def __init__(self, callback, loop: asyncio.AbstractEventLoop, debounce: float = 1.0):
        self.callback = callback
        self.loop = loop
        self.last_trigger = 0.0
        self.debounce_seconds = debounce

    def on_modified(self, event):
        if event.is_directory:
            return
        if not event.src_path.endswith(_WATCHED_EXTENSIONS):
            return
        current_time = time.time()
        if current_time - self.last_trigger < self.debounce_seconds:
            return
        self.last_trigger = current_time
        print(f"\n🔄 File changed: {event.src_path}")
        # 透過 threadsafe 把 coroutine 丟進 loop（loop 在獨立執行緒中 run_forever）
        asyncio.run_coroutine_threadsafe(self.callback(event.src_path), self.loop)


def summarize_file(sync: ComponentFileSync, filepath: str) -> None:
    """Re-parse one file and print a one-line summary; failures are reported, not raised."""
    try:
        result = sync.load(filepath)
    except (StudioSyncError, OSError) as e:
        print(f"   ❌ {e}")
        return
    entry = sync.registry.get_by_filepath(filepath)
    if entry is not None:
        entry.metadata = result.file_metadata
    print(f"   📄 {filepath}: {len(result.component_tree)} nodes, {len(result.css_imports)} css imports")


def cmd_watch(args, config: dict):
    """Watch: 監聽 srcRoot 下的 .tsx 變更並重新解析."""
    src_dir = _src_root(args, config)
    sync = _make_sync(args, config)
    print(f"👀 Watching for changes in '{src_dir}'...")
    print(f"   {len(sync.registry)} components / modules registered")
    print("   Press Ctrl+C to stop.")

    # 在獨立執行緒中運行 event loop，避免主執行緒與 coroutine_threadsafe 競爭
    loop = asyncio.new_event_loop()

    async def reparse(path: str):
        summarize_file(sync, path)

    def run_loop():
        asyncio.set_event_loop(loop)
        loop.run_forever()

    loop_thread = threading.Thread(target=run_loop, daemon=True)
    loop_thread.start()

    event_handler = ChangeHandler(reparse, loop, debounce=get_debounce(config))
    observer = Observer()
    observer.schedule(event_handler, path=src_dir, recursive=True)
    observer.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping watch...")
        observer.stop()
    finally:
        observer.join()
        loop.call_soon_threadsafe(loop.stop)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="studio-sync",
        description="studio-sync: Visual editor ↔ TSX component sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config path")
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    parse_p = sub.add_parser("parse", help="TSX → component tree JSON",
        epilog="Examples:\n  studio-sync parse src/pages/index.tsx\n  studio-sync parse app/pages/home.tsx --src-root app",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    parse_p.add_argument("file", help="Component / page / module file")
    parse_p.add_argument("--src-root", help="Project src folder (default: paths.srcRoot or 'src')")

    tree_p = sub.add_parser("tree", help="Preview the component tree",
        epilog="Examples:\n  studio-sync tree src/pages/index.tsx",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    tree_p.add_argument("file", help="Component / page / module file")
    tree_p.add_argument("--src-root", help="Project src folder")

    write_p = sub.add_parser("write", help="Component tree JSON → TSX",
        epilog="Examples:\n  studio-sync write src/pages/index.tsx --state page.json --dry-run\n  studio-sync write src/pages/index.tsx --state page.json",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    write_p.add_argument("file", help="File to rewrite")
    write_p.add_argument("--state", required=True, help="PageState JSON (componentTree, cssImports, optional fileMetadata)")
    write_p.add_argument("--src-root", help="Project src folder")
    write_p.add_argument("--dry-run", action="store_true", help="Print a unified diff instead of writing")

    watch_p = sub.add_parser("watch", help="Watch .tsx changes and re-parse",
        epilog="Examples:\n  studio-sync watch\n  studio-sync watch --src-root app",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    watch_p.add_argument("--src-root", help="Project src folder")

    args = parser.parse_args(argv)
    config = load_config(args.config)

    commands = {
        "parse": cmd_parse,
        "tree": cmd_tree,
        "write": cmd_write,
        "watch": cmd_watch,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return
    try:
        command(args, config)
    except (StudioSyncError, OSError, json.JSONDecodeError) as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
