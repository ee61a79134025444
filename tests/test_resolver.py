"""Tests for default keychain resolution and switching."""
import os

import pytest

from gpg_keychain.keychains.domains.errors import KeychainNotFoundError, NoKeychainsError
from gpg_keychain.keychains.workflows import resolver


@pytest.fixture
def bare_keychains(layout):
    """Create keychain directories without credentials (resolution ignores them)."""
    def _make(*names):
        for name in names:
            (layout.keychain_dir(name) / "keys").mkdir(parents=True)
    return _make


class TestResolve:
    """Test suite for resolve()."""

    def test_no_keychains_raises(self, layout):
        """Test resolve fails when the root holds no keychains."""
        with pytest.raises(NoKeychainsError) as exc_info:
            resolver.resolve(layout)

        assert str(layout.root) in str(exc_info.value)

    def test_fallback_is_first_keychain_and_stable(self, layout, bare_keychains):
        """Test fallback picks the same keychain on repeated calls."""
        bare_keychains("beta", "alpha")

        first = resolver.resolve(layout)
        second = resolver.resolve(layout)

        assert first.name == "alpha"
        assert second.name == "alpha"
        assert first.source == "fallback"

    def test_fallback_never_creates_pointer(self, layout, bare_keychains):
        """Test resolve has no side effects on the Default Pointer."""
        bare_keychains("alpha")

        resolver.resolve(layout)

        assert not layout.pointer_path.is_symlink()
        assert not layout.pointer_path.exists()

    def test_pointer_wins_over_fallback(self, layout, bare_keychains):
        bare_keychains("alpha", "beta")
        os.symlink("beta", layout.pointer_path)

        active = resolver.resolve(layout)

        assert active.name == "beta"
        assert active.source == "pointer"
        assert active.path == layout.keychain_dir("beta")

    def test_dangling_pointer_falls_back(self, layout, bare_keychains, caplog):
        """Test a pointer to a removed keychain is ignored with a warning."""
        bare_keychains("alpha")
        os.symlink("gone", layout.pointer_path)

        active = resolver.resolve(layout)

        assert active.name == "alpha"
        assert "gone" in caplog.text

    def test_pointer_is_not_listed_as_keychain(self, layout, bare_keychains):
        bare_keychains("alpha")
        os.symlink("alpha", layout.pointer_path)

        assert layout.list_keychains() == ["alpha"]

    def test_explicit_name(self, layout, bare_keychains):
        bare_keychains("alpha", "beta")
        os.symlink("alpha", layout.pointer_path)

        active = resolver.resolve(layout, "beta")

        assert active.name == "beta"
        assert active.source == "explicit"

    def test_explicit_missing_name_lists_available(self, layout, bare_keychains):
        bare_keychains("alpha", "beta")

        with pytest.raises(KeychainNotFoundError) as exc_info:
            resolver.resolve(layout, "gamma")

        assert exc_info.value.available == ["alpha", "beta"]
        assert "gamma" in str(exc_info.value)


class TestSetDefault:
    """Test suite for set_default()."""

    def test_set_default_then_resolve(self, layout, bare_keychains):
        """Test setDefault(name) followed by resolve() returns name."""
        bare_keychains("alpha", "beta")

        resolver.set_default(layout, "beta")

        assert resolver.resolve(layout).name == "beta"

    def test_set_default_replaces_existing_pointer(self, layout, bare_keychains):
        bare_keychains("alpha", "beta")
        resolver.set_default(layout, "alpha")

        resolver.set_default(layout, "beta")

        assert layout.read_pointer() == "beta"
        assert layout.pointer_path.is_symlink()

    def test_set_default_leaves_no_staging_link(self, layout, bare_keychains):
        bare_keychains("alpha")

        resolver.set_default(layout, "alpha")

        leftovers = [p.name for p in layout.root.iterdir() if p.name.startswith(".")]
        assert leftovers == []

    def test_set_default_unknown_keychain(self, layout, bare_keychains):
        """Test setDefault fails with NotFound and keeps the old pointer."""
        bare_keychains("alpha")
        resolver.set_default(layout, "alpha")

        with pytest.raises(KeychainNotFoundError) as exc_info:
            resolver.set_default(layout, "missing")

        assert exc_info.value.available == ["alpha"]
        assert layout.read_pointer() == "alpha"

    def test_clear_default(self, layout, bare_keychains):
        bare_keychains("alpha")
        resolver.set_default(layout, "alpha")

        resolver.clear_default(layout)

        assert layout.read_pointer() is None
