"""Tests for wg_tracker/config/policy.py - repository policy."""

import httpx
import pytest

from wg_tracker.config.policy import (
    FALLBACK_COMPONENT,
    LabelPolicy,
    RepoPolicy,
    load_policy,
    parse_component,
    spec_short_name,
)
from wg_tracker.exceptions import ConfigurationError, NetworkError, PolicyError, ResponseError
from wg_tracker.models.domain import IssueLabel

POLICY_YAML = """
labels:
  color: "fbca04"
  prefixes: ["css-", "selectors-"]
components:
  widget: "Widgets :: Core"
  css-grid: "Core :: Layout: Grid"
  default: "Core :: CSS Parsing and Computation"
"""


class TestParseComponent:
    def test_splits_and_trims(self) -> None:
        assert parse_component("Widgets :: Core") == ("Widgets", "Core")
        assert parse_component("Core::Layout: Grid") == ("Core", "Layout: Grid")

    @pytest.mark.parametrize("value", ["Widgets", "A :: B :: C", " :: Core", "Widgets ::  "])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(PolicyError):
            parse_component(value)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("[spec] widget-12", "widget"),
        ("[spec] css-grid-2", "css-grid"),
        ("[spec] selectors", "selectors"),
        ("bug", None),
    ],
)
def test_spec_short_name(label: str, expected: str | None) -> None:
    assert spec_short_name(label) == expected


class TestLabelMatching:
    def test_matches_color_or_prefix(self) -> None:
        policy = RepoPolicy(labels=LabelPolicy(color="fbca04", prefixes=["css-"]))

        assert policy.label_matches(IssueLabel(name="Agenda+", color="fbca04"))
        assert policy.label_matches(IssueLabel(name="css-grid-2", color="ededed"))
        assert not policy.label_matches(IssueLabel(name="Needs Edits", color="ededed"))

    def test_without_label_policy_nothing_matches(self) -> None:
        assert RepoPolicy().desired_labels([IssueLabel(name="css-grid-2", color="fbca04")]) == []

    def test_desired_labels_keeps_order(self) -> None:
        policy = RepoPolicy(labels=LabelPolicy(prefixes=["css-", "selectors-"]))
        labels = [
            IssueLabel(name="selectors-4", color="a"),
            IssueLabel(name="other", color="b"),
            IssueLabel(name="css-grid-2", color="c"),
        ]

        assert [label.name for label in policy.desired_labels(labels)] == ["selectors-4", "css-grid-2"]


class TestComponentFor:
    def test_single_match(self) -> None:
        policy = RepoPolicy(components={"widget": "Widgets :: Core"})

        assert policy.component_for(["bug", "[spec] widget-12"]) == ("Widgets", "Core")

    def test_same_component_twice_is_one_match(self) -> None:
        policy = RepoPolicy(components={"widget": "Widgets :: Core"})

        assert policy.component_for(["[spec] widget-1", "[spec] widget-2"]) == ("Widgets", "Core")

    def test_ambiguous_match_uses_default(self) -> None:
        policy = RepoPolicy.from_yaml_text(POLICY_YAML)

        assert policy.component_for(["[spec] widget-1", "[spec] css-grid-2"]) == (
            "Core",
            "CSS Parsing and Computation",
        )

    def test_no_match_without_default_uses_fallback(self) -> None:
        policy = RepoPolicy(components={"widget": "Widgets :: Core"})

        assert policy.component_for(["bug"]) == FALLBACK_COMPONENT == ("Invalid Bugs", "General")

    def test_malformed_entry_raises(self) -> None:
        policy = RepoPolicy(components={"widget": "Widgets"})

        with pytest.raises(PolicyError):
            policy.component_for(["[spec] widget-1"])


class TestFromYamlText:
    def test_parses_policy(self) -> None:
        policy = RepoPolicy.from_yaml_text(POLICY_YAML)

        assert policy.labels == LabelPolicy(color="fbca04", prefixes=["css-", "selectors-"])
        assert policy.components["widget"] == "Widgets :: Core"

    def test_empty_document(self) -> None:
        assert RepoPolicy.from_yaml_text("") == RepoPolicy()

    @pytest.mark.parametrize("text", ["labels: [unclosed", "- a\n- b\n", "labels: 5\n"])
    def test_rejects_invalid(self, text: str) -> None:
        with pytest.raises(ConfigurationError):
            RepoPolicy.from_yaml_text(text, source="config.yaml")


class TestLoadPolicy:
    @pytest.mark.asyncio
    async def test_local_file(self, settings, tmp_path) -> None:
        path = tmp_path / "policy.yaml"
        path.write_text(POLICY_YAML)
        settings.policy.file = str(path)

        policy = await load_policy(settings)

        assert policy.component_for(["[spec] widget-3"]) == ("Widgets", "Core")

    @pytest.mark.asyncio
    async def test_missing_local_file(self, settings, tmp_path) -> None:
        settings.policy.file = str(tmp_path / "absent.yaml")

        with pytest.raises(ConfigurationError, match="Cannot read policy file"):
            await load_policy(settings)

    @pytest.mark.asyncio
    async def test_fetches_from_decisions_repository(self, settings) -> None:
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, text=POLICY_YAML)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            policy = await load_policy(settings, client)

        assert requested == ["https://raw.githubusercontent.com/example/decisions/master/config.yaml"]
        assert policy.labels.color == "fbca04"

    @pytest.mark.asyncio
    async def test_http_error_status(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="404: Not Found")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ResponseError) as exc_info:
                await load_policy(settings, client)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_network_failure(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(NetworkError):
                await load_policy(settings, client)
