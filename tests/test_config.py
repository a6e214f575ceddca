"""
Tests for the configuration module.
"""

from deal_desk.config import Config, _env_bool


class TestEnvBool:
    """Boolean environment flags."""

    def test_missing_uses_default(self, monkeypatch):
        monkeypatch.delenv('DEAL_DESK_TEST_FLAG', raising=False)
        assert _env_bool('DEAL_DESK_TEST_FLAG', True) is True
        assert _env_bool('DEAL_DESK_TEST_FLAG', False) is False

    def test_truthy_values(self, monkeypatch):
        for raw in ('1', 'true', 'TRUE', 'yes', ' on '):
            monkeypatch.setenv('DEAL_DESK_TEST_FLAG', raw)
            assert _env_bool('DEAL_DESK_TEST_FLAG', False) is True

    def test_falsy_values(self, monkeypatch):
        for raw in ('0', 'false', 'no', 'off', ''):
            monkeypatch.setenv('DEAL_DESK_TEST_FLAG', raw)
            assert _env_bool('DEAL_DESK_TEST_FLAG', True) is False


class TestConfigValidate:
    """Required-key validation."""

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.setattr(Config, 'DATABASE_URL', '')
        monkeypatch.setattr(Config, 'CONTRACT_GENERATION_ENABLED', False)

        assert Config.validate() == ['DATABASE_URL']

    def test_openai_key_required_only_for_contracts(self, monkeypatch):
        monkeypatch.setattr(Config, 'DATABASE_URL', 'sqlite:///deal_desk.db')
        monkeypatch.setattr(Config, 'OPENAI_API_KEY', '')

        monkeypatch.setattr(Config, 'CONTRACT_GENERATION_ENABLED', True)
        assert Config.validate() == ['OPENAI_API_KEY']

        monkeypatch.setattr(Config, 'CONTRACT_GENERATION_ENABLED', False)
        assert Config.validate() == []

    def test_similarity_defaults(self):
        assert Config.SIMILARITY_LOOKBACK_DAYS > 0
        assert Config.SIMILARITY_CANDIDATE_LIMIT > 0
        assert Config.SIMILARITY_RESULT_LIMIT > 0
        assert Config.SIMILARITY_RECENT_DAYS > 0
