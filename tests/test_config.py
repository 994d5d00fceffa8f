"""Tests for settings loading and validation."""

from decimal import Decimal

import pytest

from config import default_settings, load_settings_conf, SettingsError

def write_conf(tmp_path, body):
    (tmp_path / "settings.conf").write_text(body)
    return str(tmp_path)

def test_defaults_without_file(tmp_path):
    """Test that a missing settings.conf yields the defaults."""
    settings = load_settings_conf(str(tmp_path))

    assert settings['store_backend'] == 'memory'
    assert settings['nonce_ttl_minutes'] == 5
    assert settings['token_lifetime_hours'] == 24
    assert settings['max_page_size'] == 100
    assert settings['store_timeout_seconds'] == 5.0
    assert settings['default_price_per_record'] == Decimal('0.001')

def test_load_from_file(tmp_path):
    """Test values read from the DEFAULT section."""
    path = write_conf(tmp_path, (
        "[DEFAULT]\n"
        "store_backend = postgres\n"
        "jwt_secret = s3cret\n"
        "max_sample_size = 25\n"
        "log_level = debug\n"
    ))

    settings = load_settings_conf(path)

    assert settings['store_backend'] == 'postgres'
    assert settings['jwt_secret'] == 's3cret'
    assert settings['max_sample_size'] == 25
    assert settings['log_level'] == 'DEBUG'
    assert settings['default_page_size'] == 20

def test_file_without_default_section(tmp_path):
    """Test that settings outside [DEFAULT] are rejected."""
    path = write_conf(tmp_path, "[server]\napi_port = 9000\n")

    with pytest.raises(SettingsError, match=r"\[DEFAULT\]"):
        load_settings_conf(path)

def test_unparseable_file(tmp_path):
    """Test that a malformed INI file raises SettingsError."""
    path = write_conf(tmp_path, "not an ini file\n")

    with pytest.raises(SettingsError):
        load_settings_conf(path)

@pytest.mark.parametrize("overrides", [
    {"nonce_ttl_minutes": "soon"},
    {"nonce_ttl_minutes": 0},
    {"store_timeout_seconds": -1},
    {"store_backend": "redis"},
    {"default_price_per_record": "cheap"},
    {"default_price_per_record": "-0.5"},
    {"default_page_size": 200},
    {"default_sample_size": 60},
])
def test_invalid_values(overrides):
    """Test out of range and malformed settings."""
    with pytest.raises(SettingsError):
        default_settings(**overrides)

def test_default_settings_overrides():
    """Test overrides are converted like file values."""
    settings = default_settings(max_page_size=10, default_page_size=5, jwt_secret="x")

    assert settings['max_page_size'] == 10
    assert settings['default_page_size'] == 5
    assert settings['jwt_secret'] == "x"
