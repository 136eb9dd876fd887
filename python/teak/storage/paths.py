"""Storage path building utilities.

All derived blob paths go through build_card_asset_path() so production and
test runs share one layout:

    Production: cards/{card_id}/{asset}-{token}.{ext}
    Test:       test_runs/{run_id}/cards/{card_id}/{asset}-{token}.{ext}

Each write gets a fresh token so a replaced asset never overwrites the blob
still referenced by the committed card row.
"""

import os
from uuid import UUID, uuid4

TEST_PREFIX_ENV_VAR = "STORAGE_TEST_PREFIX"

ASSET_KINDS = frozenset({"thumbnail", "preview-image", "screenshot"})


def _get_test_prefix() -> str:
    prefix = os.environ.get(TEST_PREFIX_ENV_VAR, "")
    if prefix and not prefix.endswith("/"):
        prefix = f"{prefix}/"
    return prefix


def build_card_asset_path(card_id: UUID | str, asset: str, ext: str) -> str:
    """Build a unique storage path for a derived card asset.

    Args:
        card_id: The owning card.
        asset: One of ASSET_KINDS.
        ext: File extension without leading dot.

    Raises:
        ValueError: If asset is not a known kind.
    """
    if asset not in ASSET_KINDS:
        raise ValueError(f"Unknown asset kind '{asset}'")
    return f"{_get_test_prefix()}cards/{card_id}/{asset}-{uuid4().hex[:12]}.{ext.lstrip('.')}"
