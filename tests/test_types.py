import pytest

from spiris import ClientConfig, ConfigurationError, OAuth2Config, RetryPolicy


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_interval": 0},
        {"max_interval": -1},
        {"multiplier": 1.0},
        {"jitter": 1.0},
    ],
)
def test_retry_policy_rejects_bad_values(kwargs):
    with pytest.raises(ConfigurationError):
        RetryPolicy(**kwargs)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=-2)


def test_client_config_normalizes_base_url():
    cfg = ClientConfig(base_url="https://api.example.test/v2")
    assert cfg.base_url == "https://api.example.test/v2/"
    with pytest.raises(ConfigurationError):
        ClientConfig(timeout=0)


def test_oauth_config_hides_secret():
    cfg = OAuth2Config("cid", "very-secret", "http://localhost:8080/callback", scopes=["a", "b"])
    assert cfg.scopes == ("a", "b")
    assert "very-secret" not in repr(cfg)
    with pytest.raises(ConfigurationError):
        OAuth2Config("", "s", "http://localhost:8080/callback")
