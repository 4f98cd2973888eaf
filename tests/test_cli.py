from pathlib import Path

import pytest

from page_mirror import cli
from page_mirror.config import DEFAULT_HEADERS, DEFAULT_SOURCES, Settings, load_config_file
from page_mirror.path_containers import Source


def test_parse_args_defaults() -> None:
    args = cli.parse_args(["http://example.com", "out"])
    settings = cli.settings_from_args(args)

    assert settings.urls == ["http://example.com"]
    assert settings.directory == "out"
    assert settings.sources == DEFAULT_SOURCES
    assert settings.max_depth is None
    assert settings.same_origin_only is True


def test_parse_args_several_urls_and_sources() -> None:
    args = cli.parse_args(
        [
            "http://example.com/a",
            "http://example.com/b",
            "out",
            "--source",
            "img@src",
            "--source",
            "link[rel=stylesheet]@href",
            "--max-depth",
            "2",
            "--external",
            "--prettify-urls",
        ]
    )
    settings = cli.settings_from_args(args)

    assert settings.urls == ["http://example.com/a", "http://example.com/b"]
    assert settings.sources == [Source("img", "src"), Source("link[rel=stylesheet]", "href")]
    assert settings.max_depth == 2
    assert settings.same_origin_only is False
    assert settings.prettify_urls is True


def test_parse_source_rejects_missing_attribute() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["http://example.com", "out", "--source", "img"])


def test_toml_config_sets_defaults(tmp_path: Path) -> None:
    cfg = tmp_path / "mirror.toml"
    cfg.write_text(
        "[crawl]\n"
        "max_depth = 3\n"
        "prettify_urls = true\n"
        "\n"
        "[[sources]]\n"
        'selector = "img"\n'
        'attr = "src"\n',
        encoding="utf-8",
    )
    args = cli.parse_args(["--config", str(cfg), "http://example.com", "out", "--workers", "2"])
    settings = cli.settings_from_args(args)

    assert settings.max_depth == 3
    assert settings.prettify_urls is True
    assert settings.workers == 2
    assert settings.sources == [Source("img", "src")]


def test_cli_flags_win_over_config(tmp_path: Path) -> None:
    cfg = tmp_path / "mirror.yaml"
    cfg.write_text("general:\n  timeout: 5\n  workers: 3\n", encoding="utf-8")
    args = cli.parse_args(["--config", str(cfg), "http://example.com", "out", "--workers", "8"])

    assert args.timeout == 5
    assert args.workers == 8


def test_load_config_file_rejects_unknown_format(tmp_path: Path) -> None:
    cfg = tmp_path / "mirror.ini"
    cfg.write_text("[x]\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config_file(str(cfg))


def test_main_rejects_non_http_url(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["ftp://example.com", "out"])
    assert exc.value.code == 1
    assert "Invalid URL" in capsys.readouterr().out


def test_main_runs_mirror(monkeypatch, tmp_path: Path) -> None:
    calls = []
    monkeypatch.setattr(cli, "run", lambda settings: calls.append(settings) or [])

    cli.main(["http://example.com", str(tmp_path / "out")])

    assert len(calls) == 1
    assert calls[0].urls == ["http://example.com"]


def test_user_agent_overrides_default_header() -> None:
    args = cli.parse_args(["http://example.com", "out", "--user-agent", "mirror-bot/1.0"])
    settings = cli.settings_from_args(args)

    headers = settings.request_headers()
    assert headers["User-Agent"] == "mirror-bot/1.0"
    assert headers["Accept-Language"] == DEFAULT_HEADERS["Accept-Language"]
    assert Settings().request_headers() == DEFAULT_HEADERS


def test_load_config_file_requires_mapping(tmp_path: Path) -> None:
    cfg = tmp_path / "mirror.yml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config_file(str(cfg))
