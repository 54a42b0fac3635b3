"""
Inventory manifest model (manifest.py)
"""

import pytest

from conftest import SOURCE_URL, make_inventory
from expozr.faults import InvalidManifestFault
from expozr.loading.formats import ModuleFormat
from expozr.manifest import (
    CargoDescriptor,
    LoadedCargo,
    SourceReference,
    compute_integrity,
    parse_inventory,
    validate_inventory,
    verify_integrity,
)


# ============================================================================
# Validation
# ============================================================================


class TestValidation:

    def test_valid_document(self):
        validate_inventory(make_inventory())

    @pytest.mark.parametrize("document, problem", [
        ([], "must be an object"),
        ({"cargo": {}}, "missing 'source'"),
        ({"source": {"name": "r", "version": "1.0.0"}, "cargo": {}}, "missing 'url'"),
        ({"source": {"name": "r", "version": "1.0.0", "url": "u"}, "cargo": []}, "'cargo' must be"),
    ])
    def test_structural_errors(self, document, problem):
        with pytest.raises(InvalidManifestFault) as exc_info:
            validate_inventory(document)
        assert problem in exc_info.value.message

    def test_cargo_entry_missing_field(self):
        document = make_inventory({"./math": {"name": "./math", "version": "1.0.0"}})
        with pytest.raises(InvalidManifestFault, match="entry"):
            validate_inventory(document)

    def test_cargo_entry_bad_version(self):
        document = make_inventory({"./math": {"name": "./math", "version": "one", "entry": "m.py"}})
        with pytest.raises(InvalidManifestFault, match="invalid version"):
            validate_inventory(document)


# ============================================================================
# Parsing
# ============================================================================


class TestParseInventory:

    def test_parse(self):
        inventory = parse_inventory(make_inventory(dependencies={"shared": "1.0.0"}))
        assert inventory.source.name == "remote"
        assert inventory.source.url == SOURCE_URL
        assert "./math" in inventory
        assert inventory.get("./math").entry == "math.js"
        assert inventory.get("./missing") is None
        assert inventory.shared_dependencies == {"shared": "1.0.0"}
        assert inventory.generated_at == 1700000000000

    def test_alias_keys(self):
        document = {
            "warehouse": {"name": "w", "version": "2.0.0", "url": "https://w"},
            "cargoIndex": {
                "ui": {"name": "ui", "version": "2.0.0", "entry": "ui.py", "format": "cjs"},
            },
            "sharedDependencies": {"lib": "^1.0.0"},
            "generatedAt": 5,
            "integrityDigest": "abc",
        }
        inventory = parse_inventory(document)
        assert inventory.source.name == "w"
        assert inventory.get("ui").module_format is ModuleFormat.CJS
        assert inventory.shared_dependencies == {"lib": "^1.0.0"}
        assert inventory.generated_at == 5
        assert inventory.integrity_digest == "abc"

    def test_bad_timestamp_becomes_zero(self):
        document = make_inventory()
        document["timestamp"] = "yesterday"
        assert parse_inventory(document).generated_at == 0

    def test_to_dict_round_trip(self):
        document = make_inventory(digest=True)
        again = parse_inventory(parse_inventory(document).to_dict())
        assert again.get("./math") == parse_inventory(document).get("./math")
        assert again.integrity_digest == document["checksum"]


class TestCargoDescriptor:

    def test_from_dict_optional_fields(self):
        descriptor = CargoDescriptor.from_dict({
            "name": "ui",
            "version": "1.0.0",
            "entry": "ui.umd.py",
            "exports": ["render"],
            "moduleSystem": "umd",
            "dependencies": {"./math": "^1.0.0"},
        })
        assert descriptor.exports == ["render"]
        assert descriptor.module_format is ModuleFormat.UMD
        assert descriptor.dependencies == {"./math": "^1.0.0"}
        assert descriptor.to_dict()["moduleSystem"] == "umd"

    def test_unknown_format_hint_ignored(self):
        descriptor = CargoDescriptor.from_dict(
            {"name": "x", "version": "1.0.0", "entry": "x.py", "format": "amd"}
        )
        assert descriptor.module_format is None


# ============================================================================
# Integrity
# ============================================================================


class TestIntegrity:

    def test_no_digest_passes(self):
        assert verify_integrity(make_inventory()) is True

    def test_matching_digest(self):
        document = make_inventory(digest=True)
        assert document["checksum"] == compute_integrity(document)
        assert verify_integrity(document) is True

    def test_tampered_cargo_fails(self):
        document = make_inventory(digest=True)
        document["cargo"]["./math"]["entry"] = "evil.py"
        assert verify_integrity(document) is False

    def test_source_section_not_covered(self):
        document = make_inventory(digest=True)
        document["source"]["version"] = "9.9.9"
        assert verify_integrity(document) is True


# ============================================================================
# References and results
# ============================================================================


class TestSourceReference:

    def test_from_string(self):
        ref = SourceReference.from_config("remote", SOURCE_URL)
        assert ref == SourceReference(url=SOURCE_URL, alias="remote")

    def test_from_mapping(self):
        ref = SourceReference.from_config(
            "remote", {"url": SOURCE_URL, "version": "^1.0.0", "fallback": "https://mirror"}
        )
        assert ref.version == "^1.0.0"
        assert ref.fallback == "https://mirror"
        assert ref.alias == "remote"

    def test_alias_filled_in(self):
        ref = SourceReference.from_config("remote", SourceReference(url=SOURCE_URL))
        assert ref.alias == "remote"

    def test_missing_url(self):
        with pytest.raises(InvalidManifestFault):
            SourceReference.from_config("remote", {"version": "1.0.0"})


def test_loaded_cargo_module_is_payload():
    inventory = parse_inventory(make_inventory())
    loaded = LoadedCargo(payload={"add": 1}, descriptor=inventory.get("./math"), source=inventory.source)
    assert loaded.module == {"add": 1}
    assert loaded.served_from_cache is False
