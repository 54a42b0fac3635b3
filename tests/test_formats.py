"""
Format candidate generation and ordering (loading/formats.py)
"""

import pytest

from expozr.loading.formats import (
    FormatCandidate,
    FormatPreference,
    LoadingStrategy,
    ModuleFormat,
    RuntimeEnvironment,
    detect_environment,
    detect_format_from_entry,
    generate_format_urls,
    order_candidates,
    strip_entry_extension,
)

BASE = "https://cdn.example.com/remote"

ESM, UMD, CJS, AUTO = ModuleFormat.ESM, ModuleFormat.UMD, ModuleFormat.CJS, ModuleFormat.AUTO


def formats(candidates):
    return [c.format for c in candidates]


# ============================================================================
# Tags
# ============================================================================


class TestTags:

    def test_format_coerce(self):
        assert ModuleFormat.coerce("UMD") is UMD
        assert ModuleFormat.coerce(ESM) is ESM
        assert ModuleFormat.coerce(None) is None
        assert ModuleFormat.coerce("amd") is None

    def test_strategy_coerce(self):
        assert LoadingStrategy.coerce("eager") is LoadingStrategy.EAGER
        assert LoadingStrategy.coerce(None) is LoadingStrategy.DYNAMIC
        assert LoadingStrategy.coerce("bogus") is LoadingStrategy.DYNAMIC

    def test_detect_environment(self, monkeypatch):
        monkeypatch.delenv("EXPOZR_ENVIRONMENT", raising=False)
        assert detect_environment() is RuntimeEnvironment.MODULE
        monkeypatch.setenv("EXPOZR_ENVIRONMENT", "script")
        assert detect_environment() is RuntimeEnvironment.SCRIPT


# ============================================================================
# Entry helpers
# ============================================================================


class TestEntryHelpers:

    @pytest.mark.parametrize("entry, expected", [
        ("math.js", "math"),
        ("math.umd.py", "math"),
        ("lib/math.common.py", "lib/math"),
        ("lib/math", "lib/math"),
        ("dist.v2/math.min.js", "dist.v2/math.min"),
    ])
    def test_strip_entry_extension(self, entry, expected):
        assert strip_entry_extension(entry) == expected

    @pytest.mark.parametrize("entry, expected", [
        ("math.umd.py", UMD),
        ("math.cjs.py", CJS),
        ("math.common.py", CJS),
        ("math.module.py", ESM),
        ("math.py", ESM),
        ("math.js", UMD),
    ])
    def test_detect_format_from_entry(self, entry, expected):
        assert detect_format_from_entry(entry) is expected


# ============================================================================
# Candidate generation
# ============================================================================


class TestGenerateFormatUrls:

    def test_variants_then_literal_entry(self):
        candidates = generate_format_urls(BASE, "math.js")
        assert [(c.format, c.url.rsplit("/", 1)[-1]) for c in candidates] == [
            (ESM, "math.py"),
            (ESM, "math.module.py"),
            (UMD, "math.umd.py"),
            (CJS, "math.cjs.py"),
            (CJS, "math.common.py"),
            (AUTO, "math.js"),
        ]

    def test_duplicate_literal_entry_dropped(self):
        candidates = generate_format_urls(BASE, "math.umd.py")
        urls = [c.url for c in candidates]
        assert len(urls) == len(set(urls))
        assert AUTO not in formats(candidates)

    def test_custom_suffix_table(self):
        candidates = generate_format_urls(BASE, "app.js", ((UMD, (".bundle.py",)),))
        assert [c.url for c in candidates] == [f"{BASE}/app.bundle.py", f"{BASE}/app.js"]


# ============================================================================
# Ordering
# ============================================================================


class TestOrderCandidates:

    def test_module_environment_default(self):
        ordered = order_candidates(generate_format_urls(BASE, "math.js"), None, RuntimeEnvironment.MODULE)
        assert formats(ordered) == [ESM, ESM, UMD, CJS, CJS, AUTO]

    def test_script_environment_filters_native(self):
        ordered = order_candidates(generate_format_urls(BASE, "math.js"), None, RuntimeEnvironment.SCRIPT)
        assert formats(ordered) == [CJS, CJS, UMD, AUTO]

    def test_explicit_preference_then_fallbacks(self):
        preference = FormatPreference(module_format=UMD, fallback_formats=(ESM,))
        ordered = order_candidates(generate_format_urls(BASE, "math.js"), preference, RuntimeEnvironment.MODULE)
        assert formats(ordered) == [UMD, ESM, ESM, CJS, CJS, AUTO]

    def test_hint_outranks_config(self):
        preference = FormatPreference(hint=CJS, primary=UMD)
        ordered = order_candidates(generate_format_urls(BASE, "math.js"), preference, RuntimeEnvironment.MODULE)
        assert formats(ordered) == [CJS, CJS, UMD, ESM, ESM, AUTO]

    def test_config_primary_and_fallbacks(self):
        preference = FormatPreference(primary=CJS, fallbacks=(UMD,))
        assert preference.precedence(RuntimeEnvironment.MODULE) == [CJS, UMD, ESM]

    def test_order_is_stable_within_format(self):
        ordered = order_candidates(generate_format_urls(BASE, "math.js"), None, RuntimeEnvironment.MODULE)
        assert ordered[0].url.endswith("math.py")
        assert ordered[1].url.endswith("math.module.py")

    def test_auto_always_last(self):
        candidates = [FormatCandidate(AUTO, "a"), FormatCandidate(CJS, "b")]
        ordered = order_candidates(candidates, FormatPreference(module_format=CJS), RuntimeEnvironment.MODULE)
        assert formats(ordered) == [CJS, AUTO]
