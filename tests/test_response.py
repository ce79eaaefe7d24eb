"""Tests for output capture and version parsing."""

from __future__ import annotations

import sys

import pytest

from gemkit.remote.response import (
    CapturedResponse,
    create_responses,
    is_version_compatible,
    parse_version,
)


def _response(stdout: str = "", stderr: str = "") -> CapturedResponse:
    response = CapturedResponse(capture_stdout=True)
    response.write_stdout(stdout)
    response.write_stderr(stderr)
    return response


class TestParseVersion:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ('openjdk version "17.0.1" 2021-10-19', 17),
            ('java version "11.0.2" 2019-01-15 LTS', 11),
            ('java version "1.8.0_292"', 1),
            ('openjdk version "21" 2023-09-19', 21),
        ],
    )
    def test_major_version_from_first_quoted_token(self, text, expected):
        assert parse_version(text) == expected

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_output_is_maximum(self, text):
        assert parse_version(text) == sys.maxsize

    def test_output_without_quotes_is_maximum(self):
        assert parse_version("Python 3.12.1") == sys.maxsize

    def test_quoted_non_version_is_maximum(self):
        assert parse_version('warning: "locale" not set') == sys.maxsize


class TestVersionGate:
    def test_older_stderr_version_is_incompatible(self):
        assert not is_version_compatible(17, _response(stderr='version "11.0.2"'))

    def test_older_stdout_version_is_incompatible(self):
        assert not is_version_compatible(17, _response(stdout='version "11.0.2"'))

    def test_equal_or_newer_version_is_compatible(self):
        assert is_version_compatible(17, _response(stderr='version "17.0.1"'))
        assert is_version_compatible(17, _response(stderr='version "21.0.1"'))

    def test_empty_output_is_compatible(self):
        assert is_version_compatible(17, _response())


class TestCapturedResponse:
    def test_stdout_only_captured_when_requested(self):
        response = CapturedResponse(capture_stdout=False)
        response.write_stdout("ignored")
        response.write_stderr("kept")

        assert response.stdout == ""
        assert response.stderr == "kept"

    def test_buffers_grow(self):
        response = _response(stdout="a")
        response.write_stdout("b")
        assert response.stdout == "ab"

    def test_create_responses_builds_independent_buffers(self):
        responses = create_responses(3, capture_stdout=True)
        responses[0].write_stdout("x")

        assert len(responses) == 3
        assert responses[1].stdout == ""
