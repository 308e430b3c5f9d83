import json
import logging
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

STORAGE_KEY = "theme-mode"
THEME_MODES = ("system", "light", "dark")
THEMES = ("light", "dark")
THEME_COLORS = {"dark": "#0c1410", "light": "#f4fbf7"}


class LocalStorage:
    """Persistent string key/value store kept in one JSON file on this device."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class ThemeState:
    def __init__(self, storage: LocalStorage, system_theme: str = "dark"):
        self._storage = storage
        stored = storage.get_item(STORAGE_KEY)
        self.mode = stored if stored in THEME_MODES else "system"
        self.system_theme = system_theme if system_theme in THEMES else "dark"
        self._listeners: List[Callable[[str], None]] = []

    @property
    def theme(self) -> str:
        return self.system_theme if self.mode == "system" else self.mode

    @property
    def theme_color(self) -> str:
        return THEME_COLORS[self.theme]

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_mode(self, mode: str) -> None:
        if mode not in THEME_MODES:
            raise ValueError(f"Unknown theme mode: {mode}")
        before = self.theme
        self.mode = mode
        self._storage.set_item(STORAGE_KEY, mode)
        self._notify(before)

    def toggle_mode(self) -> None:
        """system -> opposite of the system theme; any explicit mode -> system."""
        if self.mode == "system":
            self.set_mode("light" if self.system_theme == "dark" else "dark")
        else:
            self.set_mode("system")

    def set_system_theme(self, theme: str) -> None:
        if theme not in THEMES or theme == self.system_theme:
            return
        before = self.theme
        self.system_theme = theme
        self._notify(before)

    def _notify(self, before: str) -> None:
        if self.theme == before:
            return
        for listener in list(self._listeners):
            listener(self.theme)

    def snapshot(self) -> dict:
        return {
            "mode": self.mode,
            "theme": self.theme,
            "system_theme": self.system_theme,
            "theme_color": self.theme_color,
        }
