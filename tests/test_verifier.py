from datetime import datetime, timezone
import pytest

from checkin_rewards.core.geo import haversine_m
from checkin_rewards.core.qr import encode_payload
from checkin_rewards.models import CheckinMethod
from checkin_rewards.schemas import AcceptedCheckIn, CheckinRequest, GpsReading, Rejection, RejectReason, Stage
from checkin_rewards.services import verifier as verifier_mod
from checkin_rewards.services.issuer import issue
from checkin_rewards.services.verifier import verify

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

def gps_req(lat, lng, accuracy=20.0, business_id="biz_1"):
    return CheckinRequest(business_id=business_id, gps=GpsReading(latitude=lat, longitude=lng, accuracy_m=accuracy))

def qr_req(text, business_id="biz_1"):
    return CheckinRequest(business_id=business_id, qr_payload=text)

@pytest.mark.asyncio
async def test_accepts_gps_checkin_next_to_the_business(db, seed_business):
    await seed_business(radius_m=100)
    out = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050, accuracy=20), now=NOW)
    assert isinstance(out, AcceptedCheckIn)
    assert out.method == CheckinMethod.GPS
    assert 15 <= out.distance_m <= 20
    assert out.effective_radius_m == 100
    assert (out.user_points, out.business_points) == (10, 5)
    assert out.business_name == "Cafe"

@pytest.mark.asyncio
async def test_rejects_gps_checkin_a_kilometre_away(db, seed_business):
    await seed_business(radius_m=100)
    out = await verify(db, user_id="u1", request=gps_req(52.5300, 13.4050), now=NOW)
    assert isinstance(out, Rejection)
    assert out.reason == RejectReason.OUT_OF_RANGE
    assert out.context["distance_m"] == pytest.approx(1100, abs=25)
    assert out.context["distance_m"] == haversine_m(52.5300, 13.4050, 52.5201, 13.4052)
    assert out.context["effective_radius_m"] == 100

@pytest.mark.asyncio
async def test_radius_boundary_is_inclusive(db, seed_business):
    user = (52.5200, 13.4050)
    exact = haversine_m(*user, 52.5201, 13.4052)
    await seed_business(radius_m=exact)

    at_edge = await verify(db, user_id="u1", request=gps_req(*user, accuracy=5), now=NOW)
    assert isinstance(at_edge, AcceptedCheckIn)

    one_metre_out = (user[0] - 1 / 111_195, user[1])
    beyond = await verify(db, user_id="u1", request=gps_req(*one_metre_out, accuracy=5), now=NOW)
    assert isinstance(beyond, Rejection)
    assert beyond.reason == RejectReason.OUT_OF_RANGE
    assert beyond.context["distance_m"] == haversine_m(*one_metre_out, 52.5201, 13.4052)
    assert beyond.context["distance_m"] > exact

@pytest.mark.asyncio
async def test_low_accuracy_halves_the_radius(db, seed_business):
    await seed_business()  # default 100 m
    # about 75 m north of the business
    lat = 52.5201 + 75 / 111_195
    good_fix = await verify(db, user_id="u1", request=gps_req(lat, 13.4052, accuracy=20), now=NOW)
    assert isinstance(good_fix, AcceptedCheckIn)

    poor_fix = await verify(db, user_id="u1", request=gps_req(lat, 13.4052, accuracy=60), now=NOW)
    assert isinstance(poor_fix, Rejection)
    assert poor_fix.reason == RejectReason.OUT_OF_RANGE
    assert poor_fix.context["effective_radius_m"] == 50
    assert poor_fix.context["radius_m"] == 100

@pytest.mark.asyncio
async def test_qr_only_business_rejects_gps_without_distance_math(db, seed_business, monkeypatch):
    await seed_business(methods="QR_ONLY")

    def boom(*args):
        raise AssertionError("distance must not be computed")
    monkeypatch.setattr(verifier_mod, "haversine_m", boom)

    out = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    assert isinstance(out, Rejection)
    assert out.reason == RejectReason.METHOD_NOT_ALLOWED
    assert out.stage == Stage.POLICY_RESOLVED
    assert "distance_m" not in out.context

@pytest.mark.asyncio
async def test_gps_only_business_rejects_qr_without_decoding(db, seed_business, monkeypatch):
    await seed_business(methods="GPS_ONLY")

    def boom(*args):
        raise AssertionError("payload must not be decoded")
    monkeypatch.setattr(verifier_mod, "decode_payload", boom)

    out = await verify(db, user_id="u1", request=qr_req(encode_payload("biz_1", "Cafe")), now=NOW)
    assert isinstance(out, Rejection)
    assert out.reason == RejectReason.METHOD_NOT_ALLOWED

@pytest.mark.asyncio
async def test_gps_needs_a_known_business_location(db, seed_business):
    await seed_business(lat=None, lng=None)
    out = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    assert out.reason == RejectReason.BUSINESS_LOCATION_UNAVAILABLE

    missing = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050, business_id="ghost"), now=NOW)
    assert missing.reason == RejectReason.BUSINESS_LOCATION_UNAVAILABLE

@pytest.mark.asyncio
async def test_unverifiable_distance_is_rejected(db, seed_business):
    await seed_business()
    reading = GpsReading.model_construct(latitude=float("nan"), longitude=13.4050, accuracy_m=5.0)
    req = CheckinRequest.model_construct(business_id="biz_1", mission_type="VISIT_CHECKIN", gps=reading, qr_payload=None)
    out = await verify(db, user_id="u1", request=req, now=NOW)
    assert isinstance(out, Rejection)
    assert out.reason == RejectReason.OUT_OF_RANGE
    assert out.context["distance_m"] is None

@pytest.mark.asyncio
async def test_qr_happy_path_for_joes_cafe(db, seed_business):
    await seed_business(business_id="biz_42", name="Joe's Cafe")
    out = await verify(db, user_id="u1", request=qr_req(encode_payload("biz_42", "Joe's Cafe"), business_id="biz_42"), now=NOW)
    assert isinstance(out, AcceptedCheckIn)
    assert out.method == CheckinMethod.QR_SCAN
    assert out.business_id == "biz_42"
    assert out.business_name == "Joe's Cafe"
    assert out.distance_m is None

@pytest.mark.asyncio
async def test_qr_works_for_business_without_location(db):
    out = await verify(db, user_id="u1", request=qr_req(encode_payload("biz_7", "Pop-up"), business_id="biz_7"), now=NOW)
    assert isinstance(out, AcceptedCheckIn)
    assert out.business_name == "Pop-up"

@pytest.mark.asyncio
async def test_qr_for_another_business_is_a_mismatch(db, seed_business):
    await seed_business(business_id="biz_42", name="Joe's Cafe")
    out = await verify(db, user_id="u1", request=qr_req(encode_payload("biz_99", "Elsewhere"), business_id="biz_42"), now=NOW)
    assert out.reason == RejectReason.BUSINESS_MISMATCH
    assert out.context == {"expected_business_id": "biz_42", "scanned_business_id": "biz_99"}

@pytest.mark.asyncio
@pytest.mark.parametrize("text,reason", [
    ("not json at all", RejectReason.MALFORMED_PAYLOAD),
    ('{"type": "WIFI", "ssid": "cafe"}', RejectReason.WRONG_PAYLOAD_TYPE),
])
async def test_bad_qr_text_is_rejected(db, seed_business, text, reason):
    await seed_business()
    out = await verify(db, user_id="u1", request=qr_req(text), now=NOW)
    assert isinstance(out, Rejection)
    assert out.reason == reason
    assert out.stage == Stage.METHOD_VALIDATED

@pytest.mark.asyncio
async def test_second_checkin_same_day_is_rejected_with_reset_time(db, session_maker, seed_business):
    await seed_business()
    first = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    async with session_maker() as s:
        await issue(s, first, now=NOW)

    again = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    assert again.reason == RejectReason.ALREADY_CHECKED_IN_TODAY
    assert again.stage == Stage.RATE_CHECKED
    assert again.context["resets_at"] == "2026-03-15T00:00:00+00:00"

@pytest.mark.asyncio
async def test_global_cap_blocks_a_sixth_business(db, session_maker, seed_business):
    for i in range(6):
        await seed_business(business_id=f"biz_{i}", name=f"Shop {i}")
    for i in range(5):
        ok = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050, business_id=f"biz_{i}"), now=NOW)
        assert isinstance(ok, AcceptedCheckIn)
        async with session_maker() as s:
            assert not isinstance(await issue(s, ok, now=NOW), Rejection)

    sixth = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050, business_id="biz_5"), now=NOW)
    assert isinstance(sixth, Rejection)
    assert sixth.reason == RejectReason.DAILY_LIMIT_REACHED
    assert sixth.context["count"] == 5
    assert sixth.context["max"] == 5

    # another user is unaffected
    other = await verify(db, user_id="u2", request=gps_req(52.5200, 13.4050, business_id="biz_5"), now=NOW)
    assert isinstance(other, AcceptedCheckIn)

@pytest.mark.asyncio
async def test_method_gate_runs_before_rate_limits(db, session_maker, seed_business):
    await seed_business()
    first = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    async with session_maker() as s:
        await issue(s, first, now=NOW)
    await seed_business(methods="QR_ONLY")
    out = await verify(db, user_id="u1", request=gps_req(52.5200, 13.4050), now=NOW)
    assert out.reason == RejectReason.METHOD_NOT_ALLOWED
