from __future__ import annotations

import pytest

from pagedsearch.settings import Settings


def test_defaults_are_valid():
    cfg = Settings(indexes=("documents", "archive"))
    assert cfg.primary_index == "documents"
    assert cfg.pages_per_set >= 1


def test_page_size_zero_is_allowed():
    assert Settings(page_size=0).page_size == 0


@pytest.mark.parametrize(
    "overrides, name",
    [
        ({"pages_per_set": 0}, "PAGES_PER_SET"),
        ({"page_size": -1}, "PAGE_SIZE"),
        ({"fetch_batch_size": 0}, "FETCH_BATCH_SIZE"),
    ],
)
def test_invalid_paging_settings_rejected(overrides, name):
    with pytest.raises(ValueError) as exc:
        Settings(**overrides)
    assert name in str(exc.value)
