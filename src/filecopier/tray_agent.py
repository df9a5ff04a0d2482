from __future__ import annotations

import argparse
import os
from pathlib import Path
import threading
import tkinter as tk
from tkinter import ttk

from PIL import Image, ImageDraw
import pystray

from filecopier.config import AppConfig, default_config_path, default_log_file, load_config
from filecopier.coordinator import MirrorCoordinator
from filecopier.diagnostics import (
    STYLE_DEFAULT,
    STYLE_EMPHASIS,
    STYLE_ERROR,
    STYLE_KEY,
    STYLE_SLOW,
    LoggingSink,
    StyledMemoryHandler,
    configure_logging,
    emit_error,
)
from filecopier.watcher import Watcher


TAG_COLORS = {
    STYLE_DEFAULT: "#c0c0c0",
    STYLE_EMPHASIS: "#ffffff",
    STYLE_KEY: "#00ff00",
    STYLE_ERROR: "#ff0000",
    STYLE_SLOW: "#800000",
    "c0": "#ff00ff",
    "c1": "#00ffff",
    "c2": "#ffff00",
}

MAX_VISIBLE_LINES = 300


class TrayAgent:
    def __init__(self, config_path: Path, log_file: Path | None = None) -> None:
        self.config_path = config_path
        self.log_file = log_file or default_log_file()

        self.logger = configure_logging(log_file=self.log_file, console=False)
        self.memory_handler = StyledMemoryHandler(max_lines=500)
        self.logger.addHandler(self.memory_handler)
        self.sink = LoggingSink(self.logger)

        try:
            config = load_config(config_path)
        except ValueError as exc:
            emit_error(self.sink, "Unable to load configuration file: ", f"{config_path} ({exc})")
            config = AppConfig(pairs=[])
        self.coordinator = MirrorCoordinator(config, self.sink)

        self.icon = pystray.Icon("filecopier-agent", self._create_icon(), "FileCopier", self._build_menu())

        self.ui_root: tk.Tk | None = None
        self.ui_text: tk.Text | None = None
        self._shown_version = -1

    def _create_icon(self) -> Image.Image:
        image = Image.new("RGBA", (64, 64), (0, 0, 0, 255))
        draw = ImageDraw.Draw(image)
        draw.rectangle((6, 14, 34, 50), outline=(255, 0, 255, 255), width=3)
        draw.rectangle((30, 14, 58, 50), outline=(0, 255, 255, 255), width=3)
        draw.line((20, 32, 44, 32), fill=(0, 255, 0, 255), width=3)
        return image

    def _wipe_item(self, watcher: Watcher) -> pystray.MenuItem:
        def _on_click(icon: pystray.Icon, item: pystray.MenuItem) -> None:
            watcher.wipe()

        return pystray.MenuItem(f"{watcher.pair.index} {watcher.pair.source}", _on_click)

    def _build_menu(self) -> pystray.Menu:
        wipe_items = [self._wipe_item(watcher) for watcher in self.coordinator.watchers]
        return pystray.Menu(
            pystray.MenuItem("Open log window", self._menu_open_ui, default=True),
            pystray.MenuItem(
                "Wipe and re-copy",
                pystray.Menu(*wipe_items),
                enabled=bool(wipe_items),
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Open log file", self._menu_open_log),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Quit", self._menu_quit),
        )

    def run(self) -> None:
        self.logger.info("Agent starting: config=%s", self.config_path)
        self.coordinator.start()
        self.icon.run()

    def stop(self) -> None:
        self.logger.info("Agent stopping")
        self.coordinator.stop()
        if self.ui_root is not None:
            self.ui_root.after(0, self.ui_root.destroy)
        self.icon.stop()

    def _menu_open_ui(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        threading.Thread(target=self._open_ui_thread, daemon=True).start()

    def _menu_open_log(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        try:
            os.startfile(str(self.log_file))  # type: ignore[attr-defined]
        except Exception as exc:
            self.logger.error("Failed to open path %s: %s", self.log_file, exc)

    def _menu_quit(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        self.stop()

    def _open_ui_thread(self) -> None:
        if self.ui_root is not None:
            self.ui_root.after(0, self.ui_root.lift)
            return

        root = tk.Tk()
        root.title("FileCopier")
        root.geometry("600x800")

        self.ui_root = root
        self._shown_version = -1
        self._build_ui(root)
        self._refresh_log_view()

        def _on_close() -> None:
            self.ui_root = None
            self.ui_text = None
            root.destroy()

        root.protocol("WM_DELETE_WINDOW", _on_close)
        root.mainloop()

    def _build_ui(self, root: tk.Tk) -> None:
        frame = ttk.Frame(root)
        frame.pack(fill=tk.BOTH, expand=True)

        text = tk.Text(
            frame,
            wrap="word",
            background="black",
            foreground="white",
            font=("Lucida Console", 10),
        )
        text.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        scrollbar = ttk.Scrollbar(frame, orient="vertical", command=text.yview)
        scrollbar.pack(side=tk.RIGHT, fill=tk.Y)
        text.configure(yscrollcommand=scrollbar.set)

        for style, color in TAG_COLORS.items():
            text.tag_configure(style, foreground=color)

        popup = tk.Menu(root, tearoff=0)
        wipe_menu = tk.Menu(popup, tearoff=0)
        for watcher in self.coordinator.watchers:
            wipe_menu.add_command(
                label=f"{watcher.pair.index} {watcher.pair.source}",
                command=watcher.wipe,
            )
        popup.add_cascade(label="Wipe and re-copy", menu=wipe_menu)
        text.bind("<Button-3>", lambda event: popup.tk_popup(event.x_root, event.y_root))

        text.configure(state=tk.DISABLED)
        self.ui_text = text

    def _refresh_log_view(self) -> None:
        if self.ui_root is None or self.ui_text is None:
            return

        version = self.memory_handler.version
        if version != self._shown_version:
            self._shown_version = version
            lines = self.memory_handler.read_lines()[-MAX_VISIBLE_LINES:]
            self.ui_text.configure(state=tk.NORMAL)
            self.ui_text.delete("1.0", tk.END)
            for segments in lines:
                for part, style in segments:
                    self.ui_text.insert(tk.END, part, style if style in TAG_COLORS else STYLE_DEFAULT)
                self.ui_text.insert(tk.END, "\n")
            self.ui_text.configure(state=tk.DISABLED)
            self.ui_text.see(tk.END)
        self.ui_root.after(500, self._refresh_log_view)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="filecopier-agent", description="FileCopier task tray agent")
    parser.add_argument("--config", type=Path, default=default_config_path())
    parser.add_argument("--log-file", type=Path, default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    agent = TrayAgent(config_path=args.config, log_file=args.log_file)
    agent.run()
    return 0
