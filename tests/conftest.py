"""
共用 fixtures：可預測的 uuid 產生器與測試用 metadata registry。
"""
import itertools

import pytest

from studio_sync.models import ComponentMetadata, ModuleMetadata
from studio_sync.registry import MetadataRegistry


@pytest.fixture
def uuid_factory():
    counter = itertools.count()
    return lambda: f"uuid-{next(counter)}"


@pytest.fixture
def registry():
    reg = MetadataRegistry()
    reg.register("Banner", ComponentMetadata("src/components/Banner.tsx", "banner-meta"))
    reg.register("Footer", ComponentMetadata("src/components/Footer.tsx", "footer-meta"))
    reg.register("Card", ComponentMetadata("src/components/Card.tsx", "card-meta"))
    reg.register("Panel", ModuleMetadata("src/modules/Panel.tsx", "panel-meta"))
    return reg
