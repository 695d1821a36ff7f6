from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .logging import log_event
from .utils import slugify, utc_stamp


@dataclass
class DebugArtifacts:
    """Writes inspection files named `<utc stamp>_<subject slug><suffix>` under root/kind."""

    root: Path

    def path_for(self, kind: str, subject: str, suffix: str) -> Path:
        folder = Path(self.root) / kind
        folder.mkdir(parents=True, exist_ok=True)
        base = f"{utc_stamp()}_{slugify(subject)}"
        candidate = folder / f"{base}{suffix}"
        idx = 1
        while candidate.exists():
            candidate = folder / f"{base}_{idx:02d}{suffix}"
            idx += 1
        return candidate

    def write(self, kind: str, subject: str, content: str, suffix: str) -> Path:
        path = self.path_for(kind, subject, suffix)
        path.write_text(content, encoding="utf-8")
        log_event("debug_artifact_written", kind=kind, path=str(path), chars=len(content))
        return path

    def write_markup(self, subject: str, markup: str) -> Path:
        return self.write("links", subject, markup, ".html")

    def write_prompt(self, subject: str, prompt: str) -> Path:
        return self.write("prompts", subject, prompt, ".txt")
