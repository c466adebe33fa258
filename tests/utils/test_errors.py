from IHE_Manifest_QA.utils.errors import CatalogError, ManifestParseError, ManifestQAError


def test_model_dump_drops_empty_fields():
    error = ManifestQAError("Broken")
    assert error.model_dump() == {"title": "Broken", "type": "ManifestQAError"}


def test_subclasses_carry_detail_and_extra():
    error = CatalogError("Bad catalog", detail="missing template", extra={"missing": ["1601"]})
    payload = error.model_dump()
    assert payload["type"] == "CatalogError"
    assert payload["detail"] == "missing template"
    assert payload["extra"] == {"missing": ["1601"]}
    assert isinstance(ManifestParseError("x"), RuntimeError)
