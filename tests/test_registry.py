"""
Tests for the provider registry.

Covers per-kind ordering, registration validation and disposal.
"""

import pytest
from conftest import FakeChatProvider, FakeProvider

from amplifier_module_ai_core.exceptions import DuplicateProviderError, UnsupportedCapabilityError
from amplifier_module_ai_core.models import CapabilityKind
from amplifier_module_ai_core.registry import ProviderRegistry


class TestRegister:
    """Tests for ProviderRegistry.register()."""

    def test_registration_order_preserved(self):
        """Providers are listed in registration order."""
        registry = ProviderRegistry()
        a, b, c = FakeChatProvider("a"), FakeChatProvider("b"), FakeChatProvider("c")
        for provider in (a, b, c):
            registry.register(provider)

        assert registry.providers_for(CapabilityKind.CHAT) == (a, b, c)

    def test_defaults_to_declared_fanout_kinds(self):
        """Without explicit kinds, every declared fan-out kind is used."""
        registry = ProviderRegistry()
        provider = FakeProvider(
            "multi",
            capabilities=(CapabilityKind.CHAT, CapabilityKind.CODE_EDIT, CapabilityKind.CODE_REVIEW),
        )
        registration = registry.register(provider)

        assert registration.kinds == (CapabilityKind.CHAT, CapabilityKind.CODE_EDIT)
        assert registry.providers_for(CapabilityKind.CODE_REVIEW) == ()

    def test_explicit_kind_subset(self):
        registry = ProviderRegistry()
        provider = FakeProvider("multi", capabilities=(CapabilityKind.CHAT, CapabilityKind.CODE_EDIT))
        registry.register(provider, [CapabilityKind.CODE_EDIT])

        assert registry.providers_for(CapabilityKind.CHAT) == ()
        assert registry.providers_for(CapabilityKind.CODE_EDIT) == (provider,)

    def test_undeclared_kind_rejected(self):
        """A provider cannot be registered for a kind it does not declare."""
        registry = ProviderRegistry()
        with pytest.raises(UnsupportedCapabilityError):
            registry.register(FakeChatProvider("a"), [CapabilityKind.CODE_COMPLETION])
        assert not registry.is_enabled()

    def test_duplicate_id_rejected(self):
        """The same provider id may not appear twice for one kind."""
        registry = ProviderRegistry()
        registry.register(FakeChatProvider("a"))
        with pytest.raises(DuplicateProviderError):
            registry.register(FakeChatProvider("a"))
        assert len(registry.providers_for(CapabilityKind.CHAT)) == 1


class TestDispose:
    """Tests for Registration.dispose()."""

    def test_dispose_unregisters_and_disposes(self):
        registry = ProviderRegistry()
        provider = FakeChatProvider("a")
        registration = registry.register(provider)

        registration.dispose()

        assert registry.providers_for(CapabilityKind.CHAT) == ()
        assert provider.disposed is True
        assert registration.disposed is True

    def test_dispose_idempotent(self):
        """Second dispose() is a no-op."""
        registry = ProviderRegistry()
        provider = FakeChatProvider("a")
        registration = registry.register(provider)
        registration.dispose()
        provider.disposed = False

        registration.dispose()

        assert provider.disposed is False

    def test_dispose_keeps_others_in_order(self):
        registry = ProviderRegistry()
        a, b, c = FakeChatProvider("a"), FakeChatProvider("b"), FakeChatProvider("c")
        registry.register(a)
        reg_b = registry.register(b)
        registry.register(c)

        reg_b.dispose()

        assert registry.providers_for(CapabilityKind.CHAT) == (a, c)

    def test_shared_provider_disposed_with_last_registration(self):
        """A provider registered for two kinds is disposed once, when both are gone."""
        registry = ProviderRegistry()
        provider = FakeProvider(
            "multi", capabilities=(CapabilityKind.CHAT, CapabilityKind.CODE_EDIT)
        )
        chat = registry.register(provider, [CapabilityKind.CHAT])
        edit = registry.register(provider, [CapabilityKind.CODE_EDIT])

        chat.dispose()

        assert provider.disposed is False
        assert registry.providers_for(CapabilityKind.CODE_EDIT) == (provider,)

        edit.dispose()

        assert provider.disposed is True
        assert not registry.is_enabled()

    def test_on_dispose_callback(self):
        registry = ProviderRegistry()
        registration = registry.register(FakeChatProvider("a"))
        seen = []
        registration.on_dispose(seen.append)

        registration.dispose()
        registration.dispose()

        assert seen == [registration]

    def test_context_manager(self):
        registry = ProviderRegistry()
        provider = FakeChatProvider("a")
        with registry.register(provider):
            assert registry.is_enabled()
        assert not registry.is_enabled()

    def test_snapshot_unaffected_by_dispose(self):
        """A snapshot taken before dispose still lists the provider."""
        registry = ProviderRegistry()
        provider = FakeChatProvider("a")
        registration = registry.register(provider)
        snapshot = registry.providers_for(CapabilityKind.CHAT)

        registration.dispose()

        assert snapshot == (provider,)


class TestQueries:
    def test_is_enabled(self):
        registry = ProviderRegistry()
        assert registry.is_enabled() is False
        registry.register(FakeChatProvider("a"))
        assert registry.is_enabled() is True

    def test_len_counts_unique_providers(self):
        registry = ProviderRegistry()
        registry.register(
            FakeProvider("multi", capabilities=(CapabilityKind.CHAT, CapabilityKind.CODE_EDIT))
        )
        registry.register(FakeChatProvider("b"))
        assert len(registry) == 2

    def test_kinds(self):
        registry = ProviderRegistry()
        registry.register(FakeChatProvider("a"))
        assert registry.kinds() == [CapabilityKind.CHAT]
