"""
Unit tests for clinician identity resolution.
"""

import pytest

from services.identity_service import ClinicianIdentity, find_clinician_by_address

from conftest import CLINICIAN_PHONE


class TestFindClinicianByAddress:
    """Test address to clinician lookup."""

    @pytest.mark.parametrize("address", [
        f"whatsapp:{CLINICIAN_PHONE}",
        f"WhatsApp:{CLINICIAN_PHONE}",
        f"  {CLINICIAN_PHONE} ",
    ])
    def test_known_address(self, db_session, clinician, address):
        identity = find_clinician_by_address(db_session, address)

        assert identity == ClinicianIdentity(clinician_id=clinician.id, full_name="Dra. Ana Rivas")

    def test_unknown_address(self, db_session, clinician):
        assert find_clinician_by_address(db_session, "whatsapp:+15550001111") is None

    @pytest.mark.parametrize("address", ["", "whatsapp:", "   "])
    def test_empty_address(self, db_session, clinician, address):
        assert find_clinician_by_address(db_session, address) is None
