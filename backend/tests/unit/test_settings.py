from teake.settings import Settings


def test_admin_emails_parse_csv_and_lowercase(monkeypatch):
	monkeypatch.setenv("ADMIN_EMAILS", "Admin@Example.com, ops@teake.app ,")
	assert Settings().admin_emails == ("admin@example.com", "ops@teake.app")


def test_admin_emails_parse_json_list(monkeypatch):
	monkeypatch.setenv("ADMIN_EMAILS", '["a@x.io", "B@y.io"]')
	assert Settings().admin_emails == ("a@x.io", "b@y.io")


def test_admin_emails_default_empty(monkeypatch):
	monkeypatch.delenv("ADMIN_EMAILS", raising=False)
	assert Settings(_env_file=None).admin_emails == ()


def test_environment_helpers(monkeypatch):
	monkeypatch.setenv("ENV", "development")
	config = Settings(_env_file=None)
	assert config.is_dev()
	assert not config.is_prod()


def test_message_ttl_override(monkeypatch):
	monkeypatch.setenv("MESSAGE_TTL_DAYS", "3")
	assert Settings(_env_file=None).message_ttl_days == 3
