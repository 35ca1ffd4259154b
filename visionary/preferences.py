"""Small key-value persistence for user preferences (API key, prompt draft).

The session controller only talks to the `PreferenceStore` protocol, so the
web app can keep preferences in memory per browser session while a local,
single-user run can keep them in a JSON file. Neither is a security boundary:
the file is readable by anyone with access to the machine. The API key is
never written to the file; it lives in memory for the browser session and is
only ever sent to Gemini.
"""

import json
import logging
import os
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "visionary.apiKey"
PROMPT_KEY = "visionary.prompt"

# Keys that must never reach a file on the server.
MEMORY_ONLY_KEYS = frozenset({CREDENTIAL_KEY})


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryPreferenceStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceStore:
    """Stores preferences as a flat JSON object, rewritten on every change."""

    def __init__(self, path: str):
        self.path = path
        self._values = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring preferences file %s: expected a JSON object", self.path)
            return {}
        if any(key in data for key in MEMORY_ONLY_KEYS):
            logger.warning("Dropping API key found in preferences file %s", self.path)
        return {str(k): str(v) for k, v in data.items() if k not in MEMORY_ONLY_KEYS}

    def _save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self._values, fh, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if key in MEMORY_ONLY_KEYS:
            raise ValueError(f"{key} is never written to disk")
        self._values[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._save()


class SessionPreferenceStore:
    """One browser session's view of a shared store.

    `MEMORY_ONLY_KEYS` stay in this session's memory; everything else is read
    from and written to `shared`.
    """

    def __init__(self, shared: PreferenceStore):
        self.shared = shared
        self._private = InMemoryPreferenceStore()

    def _store_for(self, key: str) -> PreferenceStore:
        return self._private if key in MEMORY_ONLY_KEYS else self.shared

    def get(self, key: str) -> Optional[str]:
        return self._store_for(key).get(key)

    def set(self, key: str, value: str) -> None:
        self._store_for(key).set(key, value)

    def delete(self, key: str) -> None:
        self._store_for(key).delete(key)
