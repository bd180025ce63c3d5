"""
Tests for the end-to-end scrape pipeline
"""
import subprocess
from unittest.mock import patch

import pytest

from compose_apps_exporter.aggregator import (
    NBRO_CONFIGS_METRIC,
    SCRAPE_ERRORS_METRIC,
    SERVICE_HEALTH_METRIC,
    SERVICE_STATE_METRIC,
)
from compose_apps_exporter.errors import (
    DiscoveryError,
    ParseError,
    RuntimeQueryError,
    RuntimeUnavailableError,
    ScrapeTimeoutError,
)
from compose_apps_exporter.scrape import run_scrape
from tests.fixtures.runtime import FakeQuerier, ps_container, ps_json_lines


def _value(samples, name, **labels):
    matches = [
        s for s in samples
        if s.name == name and all(s.label_dict().get(k) == v for k, v in labels.items())
    ]
    assert len(matches) == 1, f"expected one {name} sample for {labels}, got {len(matches)}"
    return matches[0].value


def _active(samples, name, app, service):
    return [
        s.label_dict()["state"] for s in samples
        if s.name == name and s.value == 1
        and s.label_dict()["compose_app"] == app and s.label_dict()["compose_service"] == service
    ]


class TestRunScrape:
    """Test run_scrape()"""

    def test_partial_parse_failure(self, make_app, make_config):
        """Test one unparseable file does not block the others"""
        make_app("alpha", services=["web"])
        make_app("beta", services=["api"])
        make_app("broken", content="services: [oops\n")
        querier = FakeQuerier({
            "alpha": {"web": ("running", "healthy")},
            "beta": {"api": ("running", "healthy")},
        })

        result = run_scrape(make_config(), querier)

        assert result.config_count == 3
        assert _value(result.samples, NBRO_CONFIGS_METRIC) == 3
        running = [
            s for s in result.samples
            if s.name == SERVICE_STATE_METRIC and s.label_dict()["state"] == "running" and s.value == 1
        ]
        assert len(running) == 2
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], ParseError)
        assert _value(result.samples, SCRAPE_ERRORS_METRIC, error_type="parse") == 1
        assert sorted(querier.queried) == ["alpha", "beta"]

    def test_runtime_unavailable_is_fatal(self, make_app, make_config):
        """Test a missing runtime aborts the scrape"""
        make_app("alpha", services=["web"])

        with pytest.raises(RuntimeUnavailableError):
            run_scrape(make_config(), FakeQuerier(available=False))

    def test_runtime_unavailable_during_query_is_fatal(self, make_app, make_config):
        """Test a runtime failure surfacing mid-scrape aborts the scrape"""
        make_app("alpha", services=["web"])
        querier = FakeQuerier(failures={"alpha": RuntimeUnavailableError("docker vanished")})

        with pytest.raises(RuntimeUnavailableError):
            run_scrape(make_config(), querier)

    @patch('compose_apps_exporter.runtime.shutil.which', return_value=None)
    def test_default_querier_without_docker(self, mock_which, make_app, make_config):
        """Test the docker compose querier reports a missing binary"""
        make_app("alpha", services=["web"])

        with pytest.raises(RuntimeUnavailableError):
            run_scrape(make_config(runtime_binary="docker-not-installed"))

        mock_which.assert_called_with("docker-not-installed")

    def test_project_query_failure_is_scoped(self, make_app, make_config):
        """Test a timed-out project reports not_up for all of its services"""
        make_app("slow", services=["web", "worker"])
        make_app("fast", services=["api"])
        querier = FakeQuerier(
            statuses={"fast": {"api": ("running", "")}},
            failures={"slow": RuntimeQueryError("slow", "timed out after 10s")},
        )

        result = run_scrape(make_config(), querier)

        for service in ("web", "worker"):
            assert _active(result.samples, SERVICE_STATE_METRIC, "slow", service) == ["not_up"]
            assert _active(result.samples, SERVICE_HEALTH_METRIC, "slow", service) == ["not_up"]
        assert _active(result.samples, SERVICE_STATE_METRIC, "fast", "api") == ["running"]
        assert _active(result.samples, SERVICE_HEALTH_METRIC, "fast", "api") == ["no_check"]
        assert _value(result.samples, SCRAPE_ERRORS_METRIC, error_type="runtime_query") == 1

    @patch('compose_apps_exporter.runtime.shutil.which', return_value="/usr/bin/docker")
    @patch('compose_apps_exporter.runtime.subprocess.run')
    def test_undecodable_output_is_scoped(self, mock_run, mock_which, make_app, make_config):
        """Test one project's non-UTF-8 output does not hide the others"""
        make_app("alpha", services=["web"])
        make_app("beta", services=["api"])

        def fake_ps(command, **kwargs):
            if command[command.index("-p") + 1] == "alpha":
                stdout = b'{"Service":"web","Name":"\xff","State":"running"}\n'
            else:
                stdout = ps_json_lines([ps_container("api", project="beta")]).encode("utf-8")
            return subprocess.CompletedProcess(args=command, returncode=0, stdout=stdout, stderr=b"")

        mock_run.side_effect = fake_ps

        result = run_scrape(make_config())

        assert _active(result.samples, SERVICE_STATE_METRIC, "alpha", "web") == ["not_up"]
        assert _active(result.samples, SERVICE_STATE_METRIC, "beta", "api") == ["running"]
        assert _value(result.samples, SCRAPE_ERRORS_METRIC, error_type="runtime_query") == 1

    @patch('compose_apps_exporter.runtime.shutil.which', return_value="/usr/bin/docker")
    @patch('compose_apps_exporter.runtime.subprocess.run')
    def test_unexecutable_runtime_is_fatal(self, mock_run, mock_which, make_app, make_config):
        """Test an exec format error aborts the scrape as RuntimeUnavailableError"""
        make_app("alpha", services=["web"])
        mock_run.side_effect = OSError(8, "Exec format error")

        with pytest.raises(RuntimeUnavailableError):
            run_scrape(make_config())

    def test_never_started_service(self, make_app, make_config, fake_querier):
        """Test a service absent from the runtime is not_up/not_up"""
        make_app("alpha", services=["web"])

        result = run_scrape(make_config(), fake_querier)

        assert _active(result.samples, SERVICE_STATE_METRIC, "alpha", "web") == ["not_up"]
        assert _active(result.samples, SERVICE_HEALTH_METRIC, "alpha", "web") == ["not_up"]

    def test_unknown_runtime_strings_are_coerced(self, make_app, make_config):
        """Test unexpected raw values never break the scrape"""
        make_app("alpha", services=["web"])
        querier = FakeQuerier({"alpha": {"web": ("hibernating", "meh")}})

        result = run_scrape(make_config(), querier)

        assert _active(result.samples, SERVICE_STATE_METRIC, "alpha", "web") == ["not_up"]
        assert _active(result.samples, SERVICE_HEALTH_METRIC, "alpha", "web") == ["no_check"]

    def test_no_compose_files(self, make_config, fake_querier):
        """Test an empty discovery result still yields the config count"""
        result = run_scrape(make_config(), fake_querier)

        assert result.config_count == 0
        assert _value(result.samples, NBRO_CONFIGS_METRIC) == 0
        assert fake_querier.queried == []

    def test_back_to_back_scrapes_are_identical(self, make_app, make_config):
        """Test unchanged inputs produce the same metric set"""
        make_app("alpha", services=["web", "db"])
        make_app("beta", services=["api"])
        querier = FakeQuerier({"alpha": {"web": ("running", "healthy"), "db": ("exited", "")}})
        config = make_config(max_workers=2)

        first = run_scrape(config, querier)
        second = run_scrape(config, querier)

        assert sorted(first.samples, key=repr) == sorted(second.samples, key=repr)

    def test_duplicate_project_names_skipped(self, make_app, make_config, fake_querier):
        """Test a second file declaring an existing project name is skipped"""
        make_app("one", content="name: shared\nservices:\n  web: {}\n")
        make_app("two", content="name: shared\nservices:\n  api: {}\n")

        result = run_scrape(make_config(), fake_querier)

        assert result.config_count == 2
        assert fake_querier.queried == ["shared"]
        assert len(result.errors) == 1

    def test_discovery_error_is_fatal(self, make_config, fake_querier):
        """Test an unreadable discovery root aborts the scrape"""
        with patch('compose_apps_exporter.discovery.os.access', return_value=False):
            with pytest.raises(DiscoveryError):
                run_scrape(make_config(), fake_querier)

    @pytest.mark.slow
    def test_scrape_deadline(self, make_app, make_config):
        """Test exceeding the scrape deadline fails the scrape cleanly"""
        make_app("alpha", services=["web"])
        querier = FakeQuerier(delays={"alpha": 1.0})

        with pytest.raises(ScrapeTimeoutError) as exc_info:
            run_scrape(make_config(scrape_timeout=0.1), querier)

        assert "alpha" in str(exc_info.value)
