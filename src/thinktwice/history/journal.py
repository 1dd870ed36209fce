"""Decision journal: one markdown record per product.

Layout:
    ~/.thinktwice/history/
    └── decisions/
        └── amazon-B0ABC123.md    # YAML frontmatter + "## Log" section

The frontmatter carries the latest state of the product; the log section is
append-only. Products are never deleted from the entity store, and this
journal is the human-readable side of that history (the "resisted"
counter in the summary view comes from here).
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

from thinktwice.store.types import Product, ProductState
from thinktwice.timeutil import Clock, now_ms

logger = logging.getLogger(__name__)

_LOG_HEADING = "## Log"


def _slugify(key: str) -> str:
    """Strip characters that are illegal in file names."""
    slug = re.sub(r'[<>:"/\\|?*\n\r\t]', "", key)
    slug = slug.strip().replace(" ", "-")
    return slug or "unnamed"


class DecisionJournal:
    """Append-only decision history on disk."""

    def __init__(self, root: Path, clock: Clock = now_ms) -> None:
        self.root = root
        self._clock = clock
        self.decisions_dir = root / "decisions"

    def _timestamp(self) -> str:
        return datetime.fromtimestamp(self._clock() / 1000).isoformat(timespec="seconds")

    def path_for(self, key: str) -> Path:
        return self.decisions_dir / f"{_slugify(key)}.md"

    def record(self, product: Product, note: str) -> Path | None:
        """Record the product's current state with a log line. Best effort."""
        path = self.path_for(product.id)
        ts = self._timestamp()
        state = product.state.value if product.state else None
        try:
            self.decisions_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                post = frontmatter.load(str(path))
            else:
                post = frontmatter.Post(
                    f"# {product.name}\n\n{_LOG_HEADING}\n",
                    created=ts,
                )
            post.metadata.update(
                key=product.id,
                name=product.name,
                price=product.price,
                marketplace=product.marketplace,
                url=product.url,
                state=state,
                updated=ts,
            )
            if _LOG_HEADING not in post.content:
                post.content += f"\n\n{_LOG_HEADING}\n"
            post.content = post.content.rstrip("\n") + f"\n- [{ts}] {note}"
            path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
        except Exception as e:
            # Unreadable or unwritable record: the decision itself is already stored
            logger.warning("Failed to journal decision for %s: %s", product.id, e)
            return None
        logger.debug("Journaled %s: %s", product.id, note)
        return path

    def entries(self) -> list[dict[str, Any]]:
        """Frontmatter of every record, most recently updated first."""
        if not self.decisions_dir.is_dir():
            return []
        entries = []
        for md_file in self.decisions_dir.glob("*.md"):
            try:
                entries.append(dict(frontmatter.load(str(md_file)).metadata))
            except Exception as e:
                logger.warning("Skipping unreadable record %s: %s", md_file.name, e)
        return sorted(entries, key=lambda m: str(m.get("updated", "")), reverse=True)

    def read_log(self, key: str) -> list[str]:
        path = self.path_for(key)
        if not path.exists():
            return []
        content = frontmatter.load(str(path)).content
        return [line[2:] for line in content.splitlines() if line.startswith("- [")]

    def stats(self) -> dict[str, int]:
        counts = Counter(str(meta.get("state")) for meta in self.entries())
        return {
            "resisted": counts.get(ProductState.DONT_NEED_IT.value, 0),
            "bought": counts.get(ProductState.I_NEED_THIS.value, 0),
            "sleeping": counts.get(ProductState.SLEEPING_ON_IT.value, 0),
            "total": sum(counts.values()),
        }
