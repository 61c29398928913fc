from unittest.mock import patch

import pytest

from checkin_service.errors import CredentialMissing, StoreError
from checkin_service.settings import (
    FACEPP_API_KEY,
    FACEPP_API_SECRET,
    FACEPP_FACESET_TOKEN,
    GEMINI_API_KEY,
    SettingsService,
)


def test_missing_gemini_key_raises(settings):
    with pytest.raises(CredentialMissing):
        settings.gemini_credentials()


def test_environment_fallback_key(store):
    settings = SettingsService(store, fallback_gemini_key='env-key')

    assert settings.gemini_credentials().api_key == 'env-key'


def test_stored_key_wins_over_fallback(store):
    store.set_setting(GEMINI_API_KEY, 'stored-key')
    settings = SettingsService(store, fallback_gemini_key='env-key')

    assert settings.gemini_credentials().api_key == 'stored-key'


def test_credentials_are_cached(store, settings):
    store.set_setting(GEMINI_API_KEY, 'k1')

    with patch.object(store, 'get_setting', wraps=store.get_setting) as spy:
        settings.gemini_credentials()
        settings.gemini_credentials()

    assert spy.call_count == 1


def test_direct_store_write_needs_invalidate(store, settings):
    store.set_setting(GEMINI_API_KEY, 'k1')
    assert settings.gemini_credentials().api_key == 'k1'

    store.set_setting(GEMINI_API_KEY, 'k2')
    assert settings.gemini_credentials().api_key == 'k1'

    settings.invalidate()
    assert settings.gemini_credentials().api_key == 'k2'


def test_set_invalidates_before_returning(settings):
    settings.set(GEMINI_API_KEY, 'k1')
    assert settings.gemini_credentials().api_key == 'k1'

    settings.set(GEMINI_API_KEY, 'k2')
    assert settings.gemini_credentials().api_key == 'k2'


def test_delete_invalidates(settings):
    settings.set(GEMINI_API_KEY, 'k1')
    settings.gemini_credentials()

    settings.delete(GEMINI_API_KEY)

    with pytest.raises(CredentialMissing):
        settings.gemini_credentials()


def test_faceset_detection(settings):
    assert not settings.has_faceset()

    settings.set(FACEPP_API_KEY, 'key')
    settings.set(FACEPP_API_SECRET, 'secret')
    assert not settings.has_faceset()

    settings.set(FACEPP_FACESET_TOKEN, 'fs-1')
    assert settings.has_faceset()
    assert settings.facepp_credentials().faceset_token == 'fs-1'


def test_store_read_failure_propagates(store, settings):
    with patch.object(store, 'get_setting', side_effect=StoreError('down')):
        with pytest.raises(StoreError):
            settings.gemini_credentials()
        with pytest.raises(StoreError):
            settings.facepp_credentials()
        with pytest.raises(StoreError):
            settings.has_faceset()


def test_store_recovery_after_failure(store, settings):
    store.set_setting(GEMINI_API_KEY, 'k1')

    with patch.object(store, 'get_setting', side_effect=StoreError('down')):
        with pytest.raises(StoreError):
            settings.gemini_credentials()

    assert settings.gemini_credentials().api_key == 'k1'
