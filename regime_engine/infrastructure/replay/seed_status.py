"""
Seed file presence check.
"""

from pathlib import Path

from regime_engine.domain.models import SeedStatus

# Anything smaller cannot hold a header and a data row
MIN_SEED_BYTES = 10


def check_seed_status(path: Path) -> SeedStatus:
    seed_path = Path(path)
    if not seed_path.exists():
        return SeedStatus(exists=False, is_empty=True, path=str(seed_path))

    try:
        if seed_path.stat().st_size < MIN_SEED_BYTES:
            return SeedStatus(exists=True, is_empty=True, path=str(seed_path))
        lines = seed_path.read_text(encoding="utf-8").strip().splitlines()
    except OSError:
        return SeedStatus(exists=False, is_empty=True, path=str(seed_path))

    # Header-only
    if len(lines) <= 1:
        return SeedStatus(exists=True, is_empty=True, path=str(seed_path))
    return SeedStatus(exists=True, is_empty=False, path=str(seed_path))
