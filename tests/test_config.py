import config


def test_int_env(monkeypatch):
    monkeypatch.setenv("SK_TEST_INT", "7")
    assert config._get_int_env("SK_TEST_INT", 5) == 7
    monkeypatch.setenv("SK_TEST_INT", "abc")
    assert config._get_int_env("SK_TEST_INT", 5) == 5
    monkeypatch.setenv("SK_TEST_INT", "-1")
    assert config._get_int_env("SK_TEST_INT", 5, minval=0) == 5
    monkeypatch.delenv("SK_TEST_INT")
    assert config._get_int_env("SK_TEST_INT", 5) == 5


def test_bool_and_float_env(monkeypatch):
    monkeypatch.setenv("SK_TEST_FLAG", "Yes")
    assert config._get_bool_env("SK_TEST_FLAG", False) is True
    monkeypatch.setenv("SK_TEST_FLAG", "off")
    assert config._get_bool_env("SK_TEST_FLAG", True) is False
    monkeypatch.setenv("SK_TEST_FLOAT", "0.25")
    assert config._get_float_env("SK_TEST_FLOAT", 0.0) == 0.25


def test_getters(monkeypatch, tmp_path):
    monkeypatch.setenv("SK_COMBAT_SEED", "42")
    assert config.get_combat_seed() == 42
    monkeypatch.setenv("SK_COMBAT_SEED", "")
    assert config.get_combat_seed() is None
    monkeypatch.setenv("SK_LOG_LEVEL", "debug")
    assert config.get_log_level() == "DEBUG"
    monkeypatch.setenv("SK_LOG_LEVEL", "loud")
    assert config.get_log_level() == "WARNING"
    monkeypatch.setenv("SK_ASSETS_DIR", str(tmp_path))
    assert config.get_assets_dir() == tmp_path
    monkeypatch.delenv("SK_ASSETS_DIR")
    assert (config.get_assets_dir() / "enemies.json").exists()
