"""
Repository policy for the decisions repository.

The policy lives in the decisions repository itself (``config.yaml`` on the
default branch) so the people triaging decisions can change it without
touching the tracker's deployment::

    labels:
      color: "fbca04"
      prefixes: ["css-", "selectors-"]
    components:
      css-grid: "Core :: Layout: Grid"
      selectors: "Core :: CSS Parsing and Computation"
      default: "Core :: CSS Parsing and Computation"

``labels`` decides which working group labels are carried over to decision
issues (as ``[spec] <name>``). ``components`` maps a spec short name to the
bug tracker product and component used when a decision is marked as a bug.
"""

from __future__ import annotations

import re
from pathlib import Path

import httpx
import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from wg_tracker.config.settings import TrackerSettings
from wg_tracker.exceptions import ConfigurationError, NetworkError, PolicyError, ResponseError
from wg_tracker.models.domain import IssueLabel

log = structlog.get_logger(__name__)

SPEC_LABEL_PREFIX = "[spec] "
DEFAULT_COMPONENT_KEY = "default"
FALLBACK_COMPONENT = ("Invalid Bugs", "General")

_TRAILING_VERSION_RE = re.compile(r"[0-9-]+$")


def parse_component(value: str) -> tuple[str, str]:
    """Split ``"Product :: Component"`` into its two parts.

    Raises:
        PolicyError: If the value does not contain exactly one separator
            or either side is empty.
    """
    parts = [part.strip() for part in value.split("::")]
    if len(parts) != 2 or not all(parts):
        raise PolicyError(f"invalid component {value!r}, expected 'Product :: Component'")
    return parts[0], parts[1]


def spec_short_name(label_name: str) -> str | None:
    """Return the spec short name of a ``[spec] <id>`` label.

    Trailing level numbers and hyphens are dropped, so ``[spec] css-grid-2``
    yields ``css-grid``. Returns None for labels without the prefix.
    """
    if not label_name.startswith(SPEC_LABEL_PREFIX):
        return None
    return _TRAILING_VERSION_RE.sub("", label_name[len(SPEC_LABEL_PREFIX) :])


class LabelPolicy(BaseModel):
    """Which working group labels are carried over to decision issues."""

    color: str | None = Field(default=None, description="Carry over labels of this color")
    prefixes: list[str] | None = Field(default=None, description="Carry over labels with these name prefixes")


class RepoPolicy(BaseModel):
    """Policy read from the decisions repository."""

    labels: LabelPolicy | None = None
    components: dict[str, str] = Field(default_factory=dict)

    def label_matches(self, label: IssueLabel) -> bool:
        """Check whether a working group label should be carried over."""
        if self.labels is None:
            return False
        if self.labels.color is not None and label.color == self.labels.color:
            return True
        return any(label.name.startswith(prefix) for prefix in self.labels.prefixes or [])

    def desired_labels(self, labels: list[IssueLabel]) -> list[IssueLabel]:
        return [label for label in labels if self.label_matches(label)]

    def component_for(self, label_names: list[str]) -> tuple[str, str]:
        """Pick the bug tracker product and component for a decision issue.

        Each ``[spec]`` label is reduced to its short name and looked up in
        ``components``. A single distinct match is used as-is. Zero or
        several matches fall back to the ``default`` entry, and without one
        to ``("Invalid Bugs", "General")``.

        Raises:
            PolicyError: If the chosen entry is not ``Product :: Component``.
        """
        matches: list[str] = []
        for name in label_names:
            short_name = spec_short_name(name)
            if short_name is None:
                continue
            component = self.components.get(short_name)
            if component is not None and component not in matches:
                matches.append(component)

        if len(matches) == 1:
            return parse_component(matches[0])
        if DEFAULT_COMPONENT_KEY in self.components:
            return parse_component(self.components[DEFAULT_COMPONENT_KEY])
        return FALLBACK_COMPONENT

    @classmethod
    def from_yaml_text(cls, text: str, source: str = "<policy>") -> RepoPolicy:
        """Parse policy YAML.

        An empty document yields an empty policy.

        Raises:
            ConfigurationError: If the YAML or its structure is invalid.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {source}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Policy in {source} must be a YAML object")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid policy in {source}: {e}") from e


async def load_policy(settings: TrackerSettings, client: httpx.AsyncClient | None = None) -> RepoPolicy:
    """Load the repository policy named by ``settings.policy``.

    Args:
        settings: Tracker settings
        client: HTTP client to fetch with; a short-lived one is created
            when omitted.

    Raises:
        ConfigurationError: If a local policy file is unreadable or any
            policy content is invalid.
        NetworkError: If the policy URL cannot be reached.
        ResponseError: If the policy URL returns an error status.
    """
    if settings.policy.file:
        path = Path(settings.policy.file)
        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read policy file: {path}") from e
        log.info("policy_loaded", source=str(path))
        return RepoPolicy.from_yaml_text(text, source=str(path))

    url = settings.policy_url()
    if client is None:
        async with httpx.AsyncClient(timeout=30.0) as own_client:
            text = await _fetch_policy(own_client, url)
    else:
        text = await _fetch_policy(client, url)

    log.info("policy_loaded", source=url)
    return RepoPolicy.from_yaml_text(text, source=url)


async def _fetch_policy(client: httpx.AsyncClient, url: str) -> str:
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise NetworkError(f"could not fetch policy from {url}") from e

    if response.status_code != 200:
        raise ResponseError(
            f"could not fetch policy from {url}",
            status_code=response.status_code,
            response_text=response.text,
        )
    return response.text
