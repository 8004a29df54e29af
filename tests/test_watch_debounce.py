"""
Watch Mode / ChangeHandler debounce 單元測試
不需要真實檔案系統事件，用 mock event 物件測試防抖與 loop 排程邏輯。
"""
import asyncio
import time
from unittest.mock import MagicMock, patch

from studio_sync.cli import ChangeHandler, _WATCHED_EXTENSIONS, summarize_file
from studio_sync.sync import ComponentFileSync


# ─── helper: 建立假 FileModifiedEvent ────────────────────────────────────────

def make_event(src_path: str, is_directory: bool = False):
    ev = MagicMock()
    ev.is_directory = is_directory
    ev.src_path = src_path
    return ev


# ─── ChangeHandler.on_modified 過濾邏輯 ──────────────────────────────────────

class TestChangeHandlerFilter:
    """測試 on_modified 的過濾條件：目錄、副檔名、callback 呼叫。"""

    def setup_method(self):
        self.loop = asyncio.new_event_loop()

        async def record(path):
            return path

        self.callback = MagicMock(side_effect=record)
        self.handler = ChangeHandler(self.callback, self.loop, debounce=0.0)

    def teardown_method(self):
        self.loop.close()

    def test_directory_event_ignored(self):
        ev = make_event("/src/components/", is_directory=True)
        with patch("asyncio.run_coroutine_threadsafe") as mock_run:
            self.handler.on_modified(ev)
            mock_run.assert_not_called()

    def test_non_watched_extension_ignored(self):
        for ext in [".png", ".md", ".json", ".css", ".ts"]:
            ev = make_event(f"/src/file{ext}")
            with patch("asyncio.run_coroutine_threadsafe") as mock_run:
                self.handler.on_modified(ev)
                mock_run.assert_not_called()

    def test_tsx_triggers_callback_with_path(self):
        ev = make_event("/src/components/Button.tsx")
        with patch("asyncio.run_coroutine_threadsafe") as mock_run:
            self.handler.on_modified(ev)
            mock_run.assert_called_once()
        self.callback.assert_called_once_with("/src/components/Button.tsx")
        # 排程的 coroutine 沒有真正執行，手動關閉避免 warning
        mock_run.call_args[0][0].close()

    def test_callback_receives_correct_loop(self):
        ev = make_event("/src/pages/index.tsx")
        with patch("asyncio.run_coroutine_threadsafe") as mock_run:
            self.handler.on_modified(ev)
            # 第二個位置參數是 loop
            assert mock_run.call_args[0][1] is self.loop
        mock_run.call_args[0][0].close()


# ─── ChangeHandler debounce 邏輯 ─────────────────────────────────────────────

class TestChangeHandlerDebounce:
    """測試防抖：短時間內重複觸發只呼叫一次 callback。"""

    def setup_method(self):
        self.loop = asyncio.new_event_loop()
        self.handler = ChangeHandler(MagicMock(), self.loop, debounce=0.5)

    def teardown_method(self):
        self.loop.close()

    def test_debounce_blocks_rapid_events(self):
        ev = make_event("/src/App.tsx")
        with patch("asyncio.run_coroutine_threadsafe") as mock_run:
            self.handler.on_modified(ev)
            self.handler.on_modified(ev)
            self.handler.on_modified(ev)
            # 只有第一次應該被送進 loop
            assert mock_run.call_count == 1

    def test_debounce_allows_event_after_window(self):
        ev = make_event("/src/App.tsx")
        with patch("asyncio.run_coroutine_threadsafe") as mock_run:
            self.handler.on_modified(ev)
            assert mock_run.call_count == 1

            # 模擬時間過了超過 debounce 視窗
            self.handler.last_trigger = time.time() - 1.0

            self.handler.on_modified(ev)
            assert mock_run.call_count == 2

    def test_debounce_timestamp_updated(self):
        ev = make_event("/src/App.tsx")
        before = time.time() - 0.01
        with patch("asyncio.run_coroutine_threadsafe"):
            self.handler.on_modified(ev)
            assert self.handler.last_trigger >= before


def test_watched_extensions_only_tsx():
    assert _WATCHED_EXTENSIONS == (".tsx",)


# ─── summarize_file ──────────────────────────────────────────────────────────

class TestSummarizeFile:
    def test_prints_node_count(self, tmp_path, capsys):
        path = tmp_path / "Card.tsx"
        path.write_text('import "./card.css";\nexport default function Card() {\n  return <div><span /></div>;\n}\n', encoding="utf-8")
        summarize_file(ComponentFileSync(), str(path))
        assert f"📄 {path}: 2 nodes, 1 css imports" in capsys.readouterr().out

    def test_parse_error_is_reported(self, tmp_path, capsys):
        path = tmp_path / "Bad.tsx"
        path.write_text("export function Bad() {}\n", encoding="utf-8")
        summarize_file(ComponentFileSync(), str(path))
        out = capsys.readouterr().out
        assert "❌" in out
        assert "[NoDefaultExport]" in out
