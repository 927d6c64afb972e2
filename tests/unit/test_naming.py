"""Unit tests for namespace and resource naming rules."""

import pytest

from namespace_manager.errors import InvalidNamespaceError
from namespace_manager.utils.naming import (
    is_namespace_valid,
    namespace_from_resource,
    namespace_from_username,
    render_permission,
    validate_namespace,
)


class TestIsNamespaceValid:
    """Test the namespace validity check."""

    @pytest.mark.parametrize(
        "name",
        ["acme", "a", "A-b_c-123", "x" * 64, "-leading-dash", "_"],
    )
    def test_valid_names(self, name):
        assert is_namespace_valid(name)

    @pytest.mark.parametrize(
        "name",
        ["", "x" * 65, "with space", "dot.ted", "slash/ed", "tab\t", "new\nline"],
    )
    def test_invalid_names(self, name):
        assert not is_namespace_valid(name)

    def test_prefix_required(self):
        """Should require the configured prefix when one is set."""
        assert is_namespace_valid("proj-acme", "proj-")
        assert not is_namespace_valid("acme", "proj-")
        assert not is_namespace_valid("proj", "proj-")

    def test_validate_raises(self):
        """Should raise InvalidNamespaceError naming the rules."""
        with pytest.raises(InvalidNamespaceError) as exc_info:
            validate_namespace("bad name", "proj-")

        error = exc_info.value
        assert error.namespace == "bad name"
        assert error.field == "namespace"
        assert not error.retryable
        assert 'begin with "proj-"' in str(error)


class TestNamespaceFromResource:
    """Test ownership inference from queue and exchange names."""

    def test_extracts_namespace(self):
        assert namespace_from_resource("queue/acme/jobs", "queue/") == "acme"
        assert namespace_from_resource("exchange/acme/a/b/c", "exchange/") == "acme"

    @pytest.mark.parametrize(
        "name",
        [
            "other/acme/jobs",
            "queue/acme",
            "queue//jobs",
            "queue/bad.name/jobs",
            "queues/acme/jobs",
            "acme/jobs",
            "queue/" + "x" * 65 + "/jobs",
        ],
    )
    def test_non_tenant_names(self, name):
        """Should return None for anything outside the naming scheme."""
        assert namespace_from_resource(name, "queue/") is None

    def test_empty_resource_prefix_matches_nothing(self):
        """Should never claim resources when no prefix is configured."""
        assert namespace_from_resource("acme/jobs", "") is None

    def test_namespace_prefix(self):
        """Should only match namespaces carrying the required prefix."""
        assert namespace_from_resource("queue/proj-a/q", "queue/", "proj-") == "proj-a"
        assert namespace_from_resource("queue/other/q", "queue/", "proj-") is None


class TestNamespaceFromUsername:
    """Test ownership inference from broker usernames."""

    @pytest.mark.parametrize(
        "username,expected",
        [
            ("acme-A", "acme"),
            ("acme-B", "acme"),
            ("multi-part-name-B", "multi-part-name"),
        ],
    )
    def test_identity_usernames(self, username, expected):
        assert namespace_from_username(username) == expected

    @pytest.mark.parametrize(
        "username",
        ["guardian", "acme-C", "acme-", "-A", "acme-a", "acme.x-A", ""],
    )
    def test_other_usernames(self, username):
        assert namespace_from_username(username) is None

    def test_username_and_namespace_prefixes(self):
        """Should strip the username prefix and require the namespace prefix."""
        assert namespace_from_username("pulse-proj-x-A", "pulse-", "proj-") == "proj-x"
        assert namespace_from_username("pulse-other-A", "pulse-", "proj-") is None
        assert namespace_from_username("proj-x-A", "pulse-", "proj-") is None


def test_render_permission():
    assert render_permission("^queue/{namespace}/.*", "acme") == "^queue/acme/.*"


def test_render_permission_double_brace_placeholder():
    """Should fill {{namespace}} templates without leaving stray braces."""
    template = "^(queue/{{namespace}}/.*|exchange/{namespace}/.*)"
    assert render_permission(template, "acme") == "^(queue/acme/.*|exchange/acme/.*)"
