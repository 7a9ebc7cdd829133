"""Tests for resume parsing: contact, sections, skills, impact and timeline signals."""

import json

from resume_intel.resume_parser import (
    PARSER_VERSION,
    ParsedResume,
    language_hint,
    normalize_gpa,
    normalize_phone,
    parse_resume,
    split_sections,
    stuffing_ratio,
)


def test_parse_resume_contact_and_presence(sample_resume, sample_taxonomy):
    parsed = parse_resume(sample_resume, sample_taxonomy)

    assert parsed.contact.email == "jane.doe@example.com"
    assert parsed.contact.phone == "+14155550100"
    assert "https://linkedin.com/in/janedoe" in parsed.contact.links
    assert parsed.has_linkedin
    assert parsed.has_portfolio


def test_parse_resume_sections_and_structure(sample_resume, sample_taxonomy):
    parsed = parse_resume(sample_resume, sample_taxonomy)

    assert set(parsed.sections) == {"body", "summary", "experience", "education", "skills"}
    assert parsed.sections["skills"] == "Python, Docker, C++"
    assert "Led a team of 5 engineers" in parsed.sections["experience"]
    assert parsed.has_standard_headers == 4 / 6
    assert parsed.bullets_ratio == 3 / 12


def test_parse_resume_skills_impact_and_timeline(sample_resume, sample_taxonomy):
    parsed = parse_resume(sample_resume, sample_taxonomy)

    assert parsed.matched_slugs == ["python", "docker", "cpp"]
    cpp = parsed.skills[2]
    assert cpp.alias == "C++"
    assert cpp.confidence == 0.7
    assert parsed.skills[1].kind == "tool"
    assert parsed.keyword_stuffing_ratio == 0.0

    assert parsed.impact.verbs == 3
    assert parsed.impact.percents == 1
    assert parsed.impact.currency == 1
    assert parsed.impact.numbers > 0

    assert parsed.earliest_year == 2014
    assert parsed.latest_year == 2023
    assert parsed.date_spans == 6
    assert parsed.gpa == 3.6
    assert parsed.degrees == ("BS",)
    assert parsed.lang_hint == "en"
    assert parsed.version == PARSER_VERSION


def test_parse_resume_is_deterministic(sample_resume, sample_taxonomy):
    first = json.dumps(parse_resume(sample_resume, sample_taxonomy).to_dict(), sort_keys=True)
    second = json.dumps(parse_resume(sample_resume, sample_taxonomy).to_dict(), sort_keys=True)
    assert first == second


def test_parsed_resume_restores_from_persisted_json(sample_resume, sample_taxonomy):
    parsed = parse_resume(sample_resume, sample_taxonomy)
    restored = ParsedResume.from_dict(json.loads(json.dumps(parsed.to_dict())))
    assert restored.to_dict() == parsed.to_dict()


def test_to_dict_uses_camel_case_keys(sample_resume, sample_taxonomy):
    data = parse_resume(sample_resume, sample_taxonomy).to_dict()
    for key in ("hasLinkedIn", "bulletsRatio", "keywordStuffingRatio", "impactSignals", "dateSpans", "langHint"):
        assert key in data


def test_repeated_skill_raises_stuffing_ratio(sample_taxonomy):
    stuffed = parse_resume("Python " * 20, sample_taxonomy)
    assert stuffed.keyword_stuffing_ratio == 1.0
    assert stuffed.has_standard_headers == 0.0

    clean = parse_resume("Skills: Python and Docker", sample_taxonomy)
    assert clean.keyword_stuffing_ratio == 0.0


def test_stuffing_ratio_ramp():
    assert stuffing_ratio(3) == 0.0
    assert stuffing_ratio(8) == 0.5
    assert stuffing_ratio(40) == 1.0


def test_split_sections_folds_headers():
    sections = split_sections([
        "Jane Doe",
        "Work Experience",
        "Built things",
        "Technical Skills - Python, Go",
        "Professional Summary:",
        "Pragmatic engineer",
        "Experienced with distributed systems",
    ])
    assert sections == {
        "body": "Jane Doe",
        "experience": "Built things",
        "skills": "Python, Go",
        "summary": "Pragmatic engineer\nExperienced with distributed systems",
    }


def test_split_sections_reopened_header_appends():
    sections = split_sections(["Projects", "One", "Education", "BS", "Projects", "Two"])
    assert sections["projects"] == "One\nTwo"


def test_locale_alias_matches(sample_taxonomy):
    parsed = parse_resume("مہارتیں: ایکسل اور رپورٹنگ", sample_taxonomy)
    assert parsed.matched_slugs == ["excel"]
    assert parsed.lang_hint == "ur"


def test_language_hint():
    assert language_hint("Software engineer") == "en"
    assert language_hint("محمد علی") == "ur"
    assert language_hint("محمد Ali") == "mixed"


def test_normalize_gpa():
    assert normalize_gpa("CGPA: 3.62") == 3.62
    assert normalize_gpa("GPA 80/100") == 3.2
    assert normalize_gpa("GPA: 5.5") is None
    assert normalize_gpa("no grades listed") is None


def test_normalize_phone_requires_eight_digits():
    assert normalize_phone("12-34-56") is None
    assert normalize_phone("0300 1234567") == "03001234567"


def test_degrees_are_case_sensitive_and_deduplicated(sample_taxonomy):
    parsed = parse_resume("MBA, PhD and M.S. holder. Happy to be an MBA mentor.", sample_taxonomy)
    assert parsed.degrees == ("MBA", "PHD", "MS")


def test_empty_text_parses_to_empty_snapshot(sample_taxonomy):
    parsed = parse_resume("", sample_taxonomy)
    assert parsed.skills == ()
    assert parsed.word_count == 0
    assert parsed.bullets_ratio == 0.0
    assert parsed.earliest_year is None


def test_compound_headers_open_sections(sample_taxonomy):
    text = (
        "Jane Doe\n"
        "Summary of Qualifications\n"
        "Backend engineer with eight years of experience\n"
        "Education & Training\n"
        "BS Computer Science 2018\n"
        "Skills & Tools\n"
        "Python, Docker\n"
        "Work Experience & Projects\n"
        "- Led a team of 5\n"
    )
    parsed = parse_resume(text, sample_taxonomy)

    assert parsed.sections == {
        "body": "Jane Doe",
        "summary": "Backend engineer with eight years of experience",
        "education": "BS Computer Science 2018",
        "skills": "Python, Docker",
        "experience": "- Led a team of 5",
    }
    assert parsed.has_standard_headers == 4 / 6


def test_sentences_starting_with_header_words_stay_content():
    sections = split_sections(["Skills", "Experienced with distributed systems", "Projects shipped on time: 12"])
    assert sections == {
        "body": "",
        "skills": "Experienced with distributed systems\nProjects shipped on time: 12",
    }


def test_year_range_is_not_a_phone(sample_taxonomy):
    assert parse_resume("Acme Corp, 2014 - 2018", sample_taxonomy).contact.phone is None

    parsed = parse_resume("Acme Corp, 2014 - 2018\nPhone: +92 300 1234567", sample_taxonomy)
    assert parsed.contact.phone == "+923001234567"


def test_snapshot_records_taxonomy_version(sample_taxonomy):
    parsed = parse_resume("Python", sample_taxonomy)
    assert parsed.taxonomy_version
    assert parsed.to_dict()["taxonomyVersion"] == parsed.taxonomy_version

    changed = [dict(row) for row in sample_taxonomy] + [{"slug": "rust", "aliases": []}]
    assert parse_resume("Python", changed).taxonomy_version != parsed.taxonomy_version
