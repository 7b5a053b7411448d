"""
Tests for configuration loading and the one-shot command line mode.
"""

import json
import sys

from advault_dns import cli
from advault_dns.config import DEFAULT_CONFIG, load_config, parse_sources
from advault_dns.state import load_cached_blocklist


class TestLoadConfig:
    """Tests for load_config()"""

    def test_defaults_without_file(self, tmp_path):
        config = load_config(str(tmp_path / "config.json"))
        assert config == DEFAULT_CONFIG
        assert config["refresh_interval_hours"] == 6
        assert config["sinkhole_ipv4"] == "0.0.0.0"

    def test_default_sources_are_domain_lists(self, logger):
        """URL/cosmetic filter lists collapse path rules into whole-site blocks"""
        sources = parse_sources(DEFAULT_CONFIG, logger)
        assert len(sources) == len(DEFAULT_CONFIG["sources"])
        for source in sources:
            location = source.location.lower()
            for marker in ("easylist", "easyprivacy", "fanboy", "ublock", "adguardfilters"):
                assert marker not in location

    def test_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"upstream_dns": "9.9.9.9", "listen_port": 5353}))
        config = load_config(str(path))
        assert config["upstream_dns"] == "9.9.9.9"
        assert config["listen_port"] == 5353
        assert config["upstream_port"] == 53


def test_once_mode_builds_cache(tmp_path, monkeypatch, capsys):
    source = tmp_path / "hosts.txt"
    source.write_text("# local list\n0.0.0.0 ads.example.com\n0.0.0.0 tracker.example.net\n")
    cache = tmp_path / "cache.txt"
    config = tmp_path / "config.json"
    config.write_text(json.dumps({
        "sources": [str(source)],
        "blocklist_cache_path": str(cache),
        "allowlist_path": str(tmp_path / "allowlist.txt"),
        "log_path": str(tmp_path / "advault.log"),
    }))

    monkeypatch.setattr(sys, "argv", ["advault-dns", "--config", str(config), "--once", "--stats"])
    cli.main()

    assert load_cached_blocklist(str(cache)) == {"ads.example.com", "tracker.example.net"}
    assert "1 sources, 0 failed" in capsys.readouterr().out
