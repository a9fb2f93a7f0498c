import pytest

from aura_bot.domain.models import Session, VehicleRecord
from aura_bot.domain.services.vehicle_service import VehicleResolver, extract_plate, normalize_text

from conftest import FakeDirectory


@pytest.mark.parametrize("text, plate", [
    ("1234 bcd", "1234BCD"),
    ("pastillas de freno para el 1234BCD porfa", "1234BCD"),
    ("matrícula 1234 BÇD", "1234BCD"),
    ("es un M 1234 AB antiguo", "M1234AB"),
    ("hola, quiero unas escobillas", None),
    ("", None),
])
def test_extract_plate(text, plate):
    assert extract_plate(text) == plate


def test_normalize_text_strips_diacritics():
    assert normalize_text("Ñandú CAMIÓN") == "nandu camion"


@pytest.mark.asyncio
async def test_resolves_and_caches_vehicle():
    directory = FakeDirectory()
    session = Session()
    await VehicleResolver(directory).maybe_resolve("[texto] frenos 1234 bcd", session)

    assert directory.plate_calls == ["1234BCD"]
    assert session.vehicle.plate == "1234BCD"
    assert session.vehicle.brand == "RENAULT"
    assert session.vehicle.vehicle_id == 4411
    assert session.vehicle.vehicles[0]["name"] == "MEGANE IV 1.5 dCi"


@pytest.mark.asyncio
async def test_same_plate_does_not_call_directory():
    directory = FakeDirectory()
    session = Session(vehicle=VehicleRecord(plate="1234BCD", vehicle_id=1))
    await VehicleResolver(directory).maybe_resolve("otra vez el 1234 BCD", session)
    assert directory.plate_calls == []
    assert session.vehicle.vehicle_id == 1


@pytest.mark.asyncio
async def test_new_plate_replaces_cached_vehicle():
    directory = FakeDirectory()
    session = Session(vehicle=VehicleRecord(plate="9999ZZZ"))
    await VehicleResolver(directory).maybe_resolve("ahora el 1234 BCD", session)
    assert session.vehicle.plate == "1234BCD"


@pytest.mark.asyncio
async def test_vehicle_id_falls_back_to_vehicle_id_key():
    directory = FakeDirectory(vehicle={"plate": "1234BCD", "vehicles": [{"vehicleId": "77"}]})
    session = Session()
    await VehicleResolver(directory).maybe_resolve("1234 BCD", session)
    assert session.vehicle.vehicle_id == "77"


@pytest.mark.asyncio
async def test_lookup_failure_leaves_session_untouched():
    directory = FakeDirectory(fail=True)
    session = Session()
    await VehicleResolver(directory).maybe_resolve("1234 BCD", session)
    assert directory.plate_calls == ["1234BCD"]
    assert session.vehicle is None


@pytest.mark.asyncio
async def test_no_plate_no_lookup():
    directory = FakeDirectory()
    session = Session()
    await VehicleResolver(directory).maybe_resolve("[texto] hola", session)
    assert directory.plate_calls == []
