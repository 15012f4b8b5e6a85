import pytest

from voicebridge.services.data_store import InMemoryHospitalStore


@pytest.mark.asyncio
async def test_missing_data_file_degrades_to_empty(tmp_path):
    store = InMemoryHospitalStore(str(tmp_path / "missing.yaml"))

    assert await store.get_doctors() == []
    assert await store.get_hospital_locations() == []
    assert await store.search_hospital_data("cardiology") == {
        "doctors": [],
        "departments": [],
        "info": [],
    }


@pytest.mark.asyncio
async def test_invalid_yaml_degrades_to_empty(tmp_path):
    data_file = tmp_path / "broken.yaml"
    data_file.write_text("doctors: [unclosed\n")
    store = InMemoryHospitalStore(str(data_file))

    assert await store.get_departments() == []


@pytest.mark.asyncio
async def test_inactive_rows_are_hidden(tmp_path):
    data_file = tmp_path / "hospital.yaml"
    data_file.write_text(
        "doctors:\n"
        "  - {id: d1, name: Active Doctor, specialization: Cardiology}\n"
        "  - {id: d2, name: Retired Doctor, specialization: Cardiology, is_active: false}\n"
    )
    store = InMemoryHospitalStore(str(data_file))

    doctors = await store.get_doctors(specialization="cardiology")

    assert [d["id"] for d in doctors] == ["d1"]


@pytest.mark.asyncio
async def test_doctors_carry_department_and_branch(data_store):
    doctors = await data_store.get_doctors(doctor_name="rajesh")

    assert len(doctors) == 1
    assert doctors[0]["department_name"] == "Cardiology"
    assert doctors[0]["branch"] == "Bandra West"


@pytest.mark.asyncio
async def test_results_are_copies(data_store):
    doctors = await data_store.get_doctors(doctor_name="rajesh")
    doctors[0]["name"] = "Changed"

    again = await data_store.get_doctors(doctor_name="rajesh")
    assert again[0]["name"] == "Rajesh Kumar"


@pytest.mark.asyncio
async def test_contacts_sorted_by_priority(data_store):
    contacts = await data_store.get_contact_details()

    priorities = [c["priority"] for c in contacts]
    assert priorities == sorted(priorities, reverse=True)
    assert contacts[-1]["category"] == "Medical Records"


@pytest.mark.asyncio
async def test_departments_filtered_by_location(data_store):
    assert len(await data_store.get_departments("loc-bandra")) == 10
    assert await data_store.get_departments("loc-elsewhere") == []


@pytest.mark.asyncio
async def test_hospital_info_by_category(data_store):
    policies = await data_store.get_hospital_info("Policies")
    assert {row["title"] for row in policies} == {"Visiting Hours", "Admission Process"}


@pytest.mark.asyncio
async def test_doctor_availability(data_store):
    week = await data_store.get_doctor_availability("doc-003")
    assert [slot["day_of_week"] for slot in week] == [1, 2, 3, 4, 5, 6]

    tuesday = await data_store.get_doctor_availability("doc-003", 2)
    assert tuesday[0]["start_time"] == "14:00"
    assert tuesday[0]["doctor_id"] == "doc-003"

    assert await data_store.get_doctor_availability("doc-999") == []
    assert await data_store.get_doctor_availability("doc-003", 0) == []


@pytest.mark.asyncio
async def test_search_hospital_data(data_store):
    results = await data_store.search_hospital_data("emergency")

    assert [d["name"] for d in results["departments"]] == ["Emergency"]
    assert [d["name"] for d in results["doctors"]] == ["Deepak Shah"]
    assert any(row["title"] == "Emergency Services" for row in results["info"])


@pytest.mark.asyncio
async def test_conversation_rows(data_store):
    row = await data_store.create_conversation(call_sid="C1", phone_number="+919800000000")

    message = await data_store.add_conversation_message(row["id"], "user", "Hello", "en")
    ended = await data_store.end_conversation(row["id"], "completed", 42)
    summary = await data_store.create_conversation_summary(
        row["id"], "Short call", ["search_doctors"], "neutral", []
    )

    assert message["conversation_id"] == row["id"]
    assert ended["status"] == "completed"
    assert ended["duration_seconds"] == 42
    assert summary["sentiment"] == "neutral"


@pytest.mark.asyncio
async def test_unknown_conversation_row(data_store):
    assert await data_store.end_conversation("missing", "completed") is None
    assert await data_store.add_conversation_message("missing", "user", "Hi") is None
