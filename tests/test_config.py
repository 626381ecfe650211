"""Tests for settings loading."""
import tempfile
from pathlib import Path

from techwire.config import Settings, load_config_files, load_env_config, load_settings
from techwire.sources import SOURCE_KEYS


def _write(directory: str, name: str, text: str) -> Path:
    p = Path(directory) / name
    p.write_text(text, encoding="utf-8")
    return p


class TestDefaults:
    def test_defaults(self):
        s = load_settings(paths=[], environ={})
        assert s.sources == SOURCE_KEYS
        assert s.limit == 20
        assert s.closeness == 5
        assert s.cache_ttl == 7 * 24 * 60 * 60
        assert s.gemini_api_key == ""

    def test_tier_directories(self):
        s = Settings(cache_dir="/tmp/tw")
        assert s.image_dir == Path("/tmp/tw/images")
        assert s.summary_dir == Path("/tmp/tw/summaries")


class TestFiles:
    def test_yaml_file_with_dashed_keys(self):
        with tempfile.TemporaryDirectory() as td:
            p = _write(td, "techwire.yaml", (
                "cache-ttl-days: 3\n"
                "sources: hackernews, lobsters\n"
                "subreddits: [rust, golang]\n"
            ))
            s = load_settings(paths=[p], environ={})
            assert s.cache_ttl_days == 3.0
            assert s.sources == ["hackernews", "lobsters"]
            assert s.subreddits == ["rust", "golang"]

    def test_later_file_wins(self):
        with tempfile.TemporaryDirectory() as td:
            user = _write(td, "user.yaml", "limit: 10\ncloseness: 2\n")
            project = _write(td, "project.yaml", "limit: 30\n")
            s = load_settings(paths=[user, project], environ={})
            assert s.limit == 30
            assert s.closeness == 2

    def test_missing_broken_and_non_mapping_files_ignored(self):
        with tempfile.TemporaryDirectory() as td:
            broken = _write(td, "broken.yaml", "limit: [unclosed\n")
            listy = _write(td, "list.yaml", "- a\n- b\n")
            assert load_config_files([Path(td) / "nope.yaml", broken, listy]) == {}


class TestEnvironment:
    def test_prefixed_variables(self):
        env = {"TECHWIRE_LIMIT": "15", "TECHWIRE_SOURCES": "github,devto", "HOME": "/root"}
        assert load_env_config(env) == {"limit": "15", "sources": "github,devto"}
        s = load_settings(paths=[], environ=env)
        assert s.limit == 15
        assert s.sources == ["github", "devto"]

    def test_credentials_from_conventional_variables(self):
        s = load_settings(paths=[], environ={"GEMINI_API_KEY": "g", "GITHUB_TOKEN": "t"})
        assert s.gemini_api_key == "g"
        assert s.github_token == "t"
        redacted = s.redacted()
        assert redacted["gemini_api_key"] == "set"
        assert redacted["openai_api_key"] == "unset"

    def test_priority_overrides_beat_env_beat_files(self):
        with tempfile.TemporaryDirectory() as td:
            p = _write(td, "techwire.yaml", "limit: 10\nprovider_timeout: 3\ncache_dir: /from/file\n")
            s = load_settings(
                overrides={"limit": 5, "cache_dir": None},
                paths=[p],
                environ={"TECHWIRE_LIMIT": "25", "TECHWIRE_PROVIDER_TIMEOUT": "9"},
            )
            assert s.limit == 5
            assert s.provider_timeout == 9.0
            # None overrides are "not given"
            assert s.cache_dir == "/from/file"

    def test_invalid_and_unknown_values_ignored(self):
        s = load_settings(paths=[], environ={"TECHWIRE_LIMIT": "lots", "TECHWIRE_COLOUR": "blue"})
        assert s.limit == 20
        assert not hasattr(s, "colour")


class TestCacheTTL:
    def test_duration_from_environment(self):
        s = load_settings(paths=[], environ={"TECHWIRE_CACHE_TTL": "12h"})
        assert s.cache_ttl == 12 * 60 * 60
        assert s.cache_ttl_days == 0.5

    def test_duration_from_yaml(self):
        with tempfile.TemporaryDirectory() as td:
            p = _write(td, "techwire.yaml", "cache-ttl: 3d\n")
            assert load_settings(paths=[p], environ={}).cache_ttl_days == 3.0

    def test_duration_beats_days(self):
        s = load_settings(overrides={"cache_ttl": "1w"}, paths=[], environ={"TECHWIRE_CACHE_TTL_DAYS": "2"})
        assert s.cache_ttl_days == 7.0

    def test_invalid_duration_keeps_default(self):
        s = load_settings(paths=[], environ={"TECHWIRE_CACHE_TTL": "soon"})
        assert s.cache_ttl == 7 * 24 * 60 * 60
