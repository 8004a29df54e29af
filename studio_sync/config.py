"""設定檔載入與基本驗證."""

import json
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = "studio-sync.config.json"

# 已知有效的頂層欄位
_KNOWN_TOP_KEYS = {"paths", "format", "watch"}

# 各區塊已知欄位（用於拼字提示）
_KNOWN_SECTION_KEYS = {
    "paths": {"srcRoot"},
    "format": {"indentWidth"},
    "watch": {"debounce"},
}

DEFAULT_SRC_ROOT = "src"
DEFAULT_INDENT_WIDTH = 2
DEFAULT_DEBOUNCE = 1.0


def _warn(msg: str) -> None:
    print(f"   ⚠️  [config] {msg}")


def validate_config(cfg: dict) -> None:
    """對 config 做基本欄位驗證，印出警告但不拋例外。"""
    if not cfg:
        return

    # 頂層未知欄位
    for key in cfg:
        if key not in _KNOWN_TOP_KEYS:
            known = ", ".join(sorted(_KNOWN_TOP_KEYS))
            _warn(f"未知頂層欄位 '{key}'（已知欄位：{known}）")

    # 各區塊欄位
    for section, known_keys in _KNOWN_SECTION_KEYS.items():
        section_cfg = cfg.get(section, {})
        if not isinstance(section_cfg, dict):
            _warn(f"'{section}' 應為物件，目前是 {type(section_cfg).__name__}")
            continue
        for key in section_cfg:
            if key not in known_keys:
                known = ", ".join(sorted(known_keys))
                _warn(f"[{section}] 未知欄位 '{key}'（已知欄位：{known}）")

    # format.indentWidth 必須是正整數
    indent = _section(cfg, "format").get("indentWidth")
    if indent is not None and (isinstance(indent, bool) or not isinstance(indent, int) or indent <= 0):
        _warn(f"format.indentWidth 應為正整數，目前是 {indent!r}")

    # watch.debounce 值類型
    debounce = _section(cfg, "watch").get("debounce")
    if debounce is not None and (isinstance(debounce, bool) or not isinstance(debounce, (int, float))):
        _warn(f"watch.debounce 應為數字，目前是 {type(debounce).__name__}")

    # srcRoot 存在性提示（不強制，可能是 CI 環境）
    src_root = _section(cfg, "paths").get("srcRoot")
    if src_root and not Path(src_root).exists():
        _warn(f"paths.srcRoot '{src_root}' 目錄不存在（registry 將為空）")


def _section(cfg: dict, name: str) -> dict:
    section = cfg.get(name, {})
    return section if isinstance(section, dict) else {}


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """載入 JSON 設定檔，不存在則回傳空 dict；存在則做基本驗證。"""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg: Any = json.load(f)
    if not isinstance(cfg, dict):
        print(f"   ⚠️  [config] '{config_path}' 格式錯誤，應為 JSON 物件，回傳空設定。")
        return {}
    validate_config(cfg)
    return cfg


def get_src_root(cfg: dict) -> str:
    return _section(cfg, "paths").get("srcRoot") or DEFAULT_SRC_ROOT


def get_indent_width(cfg: dict) -> int:
    indent = _section(cfg, "format").get("indentWidth")
    if isinstance(indent, bool) or not isinstance(indent, int) or indent <= 0:
        return DEFAULT_INDENT_WIDTH
    return indent


def get_debounce(cfg: dict) -> float:
    debounce = _section(cfg, "watch").get("debounce")
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)):
        return DEFAULT_DEBOUNCE
    return float(debounce)
