"""Tests for the domain model: construction, helpers and validation."""

import time
from datetime import datetime, timezone

import pytest

from crm_service.domain.customer import CustomerCreate, CustomerType, CustomerUpdate, new_customer
from crm_service.domain.note import CustomerNoteCreate, NoteType, new_customer_note
from crm_service.domain.vehicle import VehicleCreate, VehicleUpdate, new_vehicle
from crm_service.errors import ValidationError

VALID_VIN = "1HGCM82633A004352"


def make_vehicle(**overrides):
    fields = dict(customer_id="cust-1", make="Toyota", model="Corolla", year=2020)
    fields.update(overrides)
    return new_vehicle(VehicleCreate(**fields))


class TestCustomer:
    def test_new_customer_defaults(self):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith"))
        assert customer.is_active is True
        assert customer.customer_type == CustomerType.INDIVIDUAL.value
        assert customer.preferences == {}
        assert customer.created_at == customer.updated_at
        assert customer.created_at.tzinfo is not None
        assert customer.email is None

    def test_display_name_prefers_company(self):
        customer = new_customer(CustomerCreate(
            first_name="Ann", last_name="Smith", customer_type="business", company_name="Acme",
        ))
        assert customer.full_name == "Ann Smith"
        assert customer.display_name == "Acme"
        assert customer.is_business

    def test_business_requires_company_name(self):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith", customer_type="business"))
        with pytest.raises(ValidationError) as exc_info:
            customer.validate()
        assert exc_info.value.field == "company_name"

    @pytest.mark.parametrize("field", ["first_name", "last_name"])
    def test_names_required(self, field):
        values = {"first_name": "Ann", "last_name": "Smith", field: ""}
        with pytest.raises(ValidationError) as exc_info:
            new_customer(CustomerCreate(**values)).validate()
        assert exc_info.value.field == field

    def test_unknown_customer_type_rejected(self):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith", customer_type="reseller"))
        with pytest.raises(ValidationError, match="customer_type"):
            customer.validate()

    @pytest.mark.parametrize("email", ["a@b", "nodomain.com", "x@y.z" + "a" * 300])
    def test_bad_email_rejected(self, email):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith", email=email))
        with pytest.raises(ValidationError, match="email"):
            customer.validate()

    def test_apply_update_only_touches_present_fields(self):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith", phone="555"))
        before = customer.updated_at
        time.sleep(0.001)
        customer.apply_update(CustomerUpdate(email="ann@example.com"))
        assert customer.email == "ann@example.com"
        assert customer.first_name == "Ann"
        assert customer.phone == "555"
        assert customer.updated_at > before

    def test_activate_is_idempotent_but_stamps(self):
        customer = new_customer(CustomerCreate(first_name="Ann", last_name="Smith"))
        before = customer.updated_at
        time.sleep(0.001)
        customer.activate()
        assert customer.is_active is True
        assert customer.updated_at > before

    def test_preferences_accept_json_values(self):
        customer = new_customer(CustomerCreate(
            first_name="Ann", last_name="Smith",
            preferences={"channel": "sms", "reminders": True, "tags": ["vip"], "limits": {"visits": 3}},
        ))
        customer.set_preference("discount", 0.1)
        assert customer.get_preference("discount") == 0.1
        assert customer.get_preference("limits") == {"visits": 3}
        assert customer.get_preference("missing", "n/a") == "n/a"

    def test_preferences_reject_non_json_values(self):
        with pytest.raises(ValidationError, match="preferences"):
            new_customer(CustomerCreate(
                first_name="Ann", last_name="Smith", preferences={"when": datetime.now(timezone.utc)},
            ))


class TestVehicle:
    def test_vin_wrong_length_rejected(self):
        with pytest.raises(ValidationError, match="17"):
            make_vehicle(vin=VALID_VIN[:-1]).validate()

    @pytest.mark.parametrize("letter", ["I", "O", "Q", "i", "o", "q"])
    def test_vin_forbidden_letters_rejected(self, letter):
        vin = VALID_VIN[:5] + letter + VALID_VIN[6:]
        assert len(vin) == 17
        with pytest.raises(ValidationError, match="I, O or Q"):
            make_vehicle(vin=vin).validate()

    def test_vin_non_alphanumeric_rejected(self):
        with pytest.raises(ValidationError):
            make_vehicle(vin=VALID_VIN[:16] + "-").validate()

    def test_valid_vin_accepted_and_normalised(self):
        vehicle = make_vehicle(vin=VALID_VIN.lower())
        vehicle.validate()
        assert vehicle.vin == VALID_VIN

    def test_vin_optional(self):
        make_vehicle(vin=None).validate()

    @pytest.mark.parametrize("year", [1899, 2101])
    def test_year_out_of_range(self, year):
        with pytest.raises(ValidationError, match="year"):
            make_vehicle(year=year).validate()

    def test_compatibility_within_three_years(self):
        base = make_vehicle(year=2020)
        assert base.is_compatible_with(make_vehicle(year=2023))
        assert base.is_compatible_with(make_vehicle(year=2017))
        assert not base.is_compatible_with(make_vehicle(year=2024))
        assert not base.is_compatible_with(make_vehicle(model="Camry"))
        assert not base.is_compatible_with(None)

    def test_descriptions(self):
        vehicle = make_vehicle(color="Red", license_plate="ABC123")
        assert vehicle.display_name == "2020 Toyota Corolla"
        assert vehicle.full_description == "2020 Toyota Corolla (Red) - Plate: ABC123"
        assert vehicle.compatibility_string == "Toyota Corolla 2020"

    def test_apply_update_keeps_untouched_fields(self):
        vehicle = make_vehicle(color="Red", metadata={"trim": "LE"})
        vehicle.apply_update(VehicleUpdate(color="Blue"))
        assert vehicle.color == "Blue"
        assert vehicle.make == "Toyota"
        assert vehicle.get_metadata("trim") == "LE"


class TestCustomerNote:
    def test_type_defaults_to_general(self):
        note = new_customer_note(CustomerNoteCreate(
            customer_id="cust-1", staff_id="s1", staff_name="Sam", note="Called",
        ))
        assert note.type == NoteType.GENERAL.value
        note.validate()

    def test_note_length_bounds(self):
        create = CustomerNoteCreate(customer_id="c", staff_id="s", staff_name="Sam", note="x" * 2001)
        with pytest.raises(ValidationError, match="2000"):
            new_customer_note(create).validate()
        with pytest.raises(ValidationError, match="note"):
            new_customer_note(CustomerNoteCreate(customer_id="c", staff_id="s", staff_name="Sam", note="")).validate()

    def test_staff_id_fits_column(self):
        create = CustomerNoteCreate(customer_id="c", staff_id="s" * 37, staff_name="Sam", note="hi")
        with pytest.raises(ValidationError, match="staff_id"):
            new_customer_note(create).validate()
        new_customer_note(CustomerNoteCreate(
            customer_id="c", staff_id="s" * 36, staff_name="Sam", note="hi",
        )).validate()

    def test_unknown_type_rejected(self):
        note = new_customer_note(CustomerNoteCreate(
            customer_id="c", staff_id="s", staff_name="Sam", note="hi", type="gossip",
        ))
        with pytest.raises(ValidationError, match="type"):
            note.validate()

    def test_short_note_and_summary(self):
        note = new_customer_note(CustomerNoteCreate(
            customer_id="c", staff_id="s", staff_name="Sam", note="a" * 50, type="complaint",
        ))
        assert note.short_note(10) == "aaaaaaa..."
        assert note.summary().startswith("[Complaint] Sam - ")
