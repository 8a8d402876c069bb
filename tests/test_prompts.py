"""Tests for patient prompt construction."""

from simpatient.prompts import (
    PATIENT_INSTRUCTIONS,
    build_patient_prompt,
    format_case_profile,
)


class TestFormatCaseProfile:
    def test_json_text_is_pretty_printed(self):
        profile = format_case_profile('{"name":"John","age":54}')
        assert profile == '{\n  "name": "John",\n  "age": 54\n}'

    def test_plain_text_is_kept(self):
        assert format_case_profile("  A 54 year old man.  ") == "A 54 year old man."

    def test_json_scalar_text_is_kept(self):
        assert format_case_profile("42") == "42"

    def test_structures_are_dumped(self):
        assert format_case_profile({"name": "Ana"}) == '{\n  "name": "Ana"\n}'

    def test_missing_description(self):
        assert format_case_profile(None) == "null"


class TestBuildPatientPrompt:
    def test_profile_is_appended(self):
        prompt = build_patient_prompt('{"name": "John"}')
        assert prompt.startswith("You are a virtual patient")
        assert prompt.endswith('{\n  "name": "John"\n}')
        assert "{profile}" in PATIENT_INSTRUCTIONS
        assert "{profile}" not in prompt

    def test_braces_in_profile_are_safe(self):
        prompt = build_patient_prompt("Notes: {unformatted}")
        assert prompt.endswith("Notes: {unformatted}")
