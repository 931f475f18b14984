"""Tests for patient and source display helpers."""

import pytest

EXT_URL = "https://api.iknl.nl/docs/pzp/r4/StructureDefinition/ext-LegallyCapable-MedicalTreatmentDecisions"


def _patient(**fields):
    from acpview.resources.models import Patient

    return Patient.model_validate({"resourceType": "Patient", "id": "p1", **fields})


def _capable(value=None, comment=None):
    nested = []
    if value is not None:
        nested.append({"url": "legallyCapable", "valueBoolean": value})
    if comment is not None:
        nested.append({"url": "legallyCapableComment", "valueString": comment})
    return [{"url": EXT_URL, "extension": nested}]


class TestPatientName:
    def test_given_and_family(self):
        from acpview.acp.patient import patient_name

        patient = _patient(name=[{"given": ["Anna", "Maria"], "family": "Smit"}, {"family": "Other"}])
        assert patient_name(patient) == "Anna Maria Smit"

    def test_family_only(self):
        from acpview.acp.patient import patient_name

        assert patient_name(_patient(name=[{"family": "Smit"}])) == "Smit"

    @pytest.mark.parametrize("fields", [{}, {"name": []}, {"name": [{}]}])
    def test_unknown(self, fields):
        from acpview.acp.patient import patient_name

        assert patient_name(_patient(**fields)) == "Unknown"

    def test_none(self):
        from acpview.acp.patient import patient_name

        assert patient_name(None) == "Unknown"


class TestLegallyCapable:
    def test_capable_with_comment(self):
        from acpview.acp.patient import legally_capable_info, legally_capable_text

        patient = _patient(extension=_capable(True, "Beoordeeld door huisarts"))
        assert legally_capable_info(patient) == (True, "Beoordeeld door huisarts")
        assert legally_capable_text(patient) == "Wilsbekwaam"

    def test_not_capable(self):
        from acpview.acp.patient import legally_capable_text

        assert legally_capable_text(_patient(extension=_capable(False))) == "Niet wilsbekwaam"

    def test_missing_extension(self):
        from acpview.acp.patient import legally_capable_info, legally_capable_text

        patient = _patient(extension=[{"url": "urn:other", "valueString": "x"}])
        assert legally_capable_info(patient) == (None, None)
        assert legally_capable_text(patient) == "Status onbekend"
        assert legally_capable_info(None) == (None, None)

    def test_extension_without_value(self):
        from acpview.acp.patient import legally_capable_text

        assert legally_capable_text(_patient(extension=_capable(comment="n.v.t."))) == "Status onbekend"


class TestSourceLabel:
    @pytest.mark.parametrize(
        "source, label",
        [
            ("urn:oid:2.16.840.1.113883.2.4.3.11|Huisartsenpraktijk De Linde", "Huisartsenpraktijk De Linde"),
            ("https://server.fire.ly", "server.fire.ly"),
            ("http://hapi.fhir.org/baseR4", "hapi.fhir.org"),
            ("local-import", "local-import"),
            ("", "Onbekend"),
            ("   ", "Onbekend"),
            (None, "Onbekend"),
        ],
    )
    def test_labels(self, source, label):
        from acpview.acp.patient import source_label

        assert source_label(source) == label
