import random

import pytest

from hipergallery.errors import RemoteError, WizardError
from hipergallery.wizard import (
    QUESTIONS,
    Step,
    UploadWizard,
    build_series_records,
    generate_description,
    generate_title,
    parse_text_document,
)

ANSWERS = ["Peaceful", "Nature", "Abstract", "", ""]


def run_questions(wizard, answers=ANSWERS):
    for value in answers:
        wizard.answer(value)


def test_generation_is_never_empty():
    answers = {"mood": "Peaceful", "theme": "Nature", "style": "Abstract", "inspiration": "", "message": ""}
    rng = random.Random(7)
    for _ in range(50):
        assert generate_title(answers, rng).strip()
        assert generate_description(answers, rng).strip()


def test_generation_uses_free_text_answers():
    answers = {"mood": "Bold", "theme": "Urban", "style": "Digital",
               "inspiration": "night buses", "message": "look up more"}
    text = generate_description(answers, random.Random(1))
    assert "night buses" in text
    assert "look up more" in text


def test_single_flow_reaches_approval_and_saves():
    wizard = UploadWizard(artist="Ada", user_id="u1", rng=random.Random(3))
    wizard.start(["/media/a.jpg"])
    assert wizard.step is Step.SELECT_MODE
    wizard.choose_mode("single")
    assert wizard.current_question.key == "mood"
    run_questions(wizard)
    assert wizard.step is Step.APPROVAL
    assert wizard.title and wizard.description

    for _ in range(5):
        wizard.regenerate()
        assert wizard.title and wizard.description

    record = wizard.approve(existing_ids=["1", "2"])
    assert wizard.step is Step.SAVED
    assert record.title == wizard.title
    assert record.style == "Abstract"
    assert record.categories == ["nature"]
    assert record.image_url == "/media/a.jpg"
    assert record.user_id == "u1"
    assert record.is_new


def test_categorical_answers_are_validated_and_normalised():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    wizard.choose_mode("single")
    with pytest.raises(WizardError):
        wizard.answer("Furious")
    wizard.answer("peaceful")
    assert wizard.answers["mood"] == "Peaceful"


def test_back_navigation_through_every_step():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    wizard.choose_mode("single")
    run_questions(wizard)
    wizard.back()
    assert wizard.step is Step.QUESTION
    assert wizard.question_index == len(QUESTIONS) - 1
    for _ in range(len(QUESTIONS) - 1):
        wizard.back()
    assert wizard.question_index == 0
    wizard.back()
    assert wizard.step is Step.SELECT_MODE
    wizard.back()
    assert wizard.step is Step.IDLE
    assert wizard.images == []


def test_custom_text_bypasses_generation():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    wizard.choose_mode("single")
    wizard.use_custom("My Title", "My words")
    assert wizard.step is Step.APPROVAL
    assert wizard.custom
    record = wizard.approve()
    assert (record.title, record.description) == ("My Title", "My words")


def test_regenerate_needs_answers_after_custom_text():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    wizard.choose_mode("single")
    wizard.use_custom("Mine")
    with pytest.raises(WizardError):
        wizard.regenerate()


def test_cancel_from_any_state_returns_to_idle():
    wizard = UploadWizard()
    wizard.start(["/a.jpg", "/b.jpg"])
    wizard.choose_mode("series")
    wizard.set_series_info("Waves", "Shared")
    wizard.cancel()
    assert wizard.step is Step.IDLE
    assert wizard.series_name == ""
    with pytest.raises(WizardError):
        wizard.approve()


def test_mode_requires_matching_image_count():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    with pytest.raises(WizardError):
        wizard.choose_mode("series")
    wizard.cancel()
    wizard.start(["/a.jpg", "/b.jpg"])
    with pytest.raises(WizardError):
        wizard.choose_mode("single")


def test_series_flow_publishes_one_record_per_image():
    wizard = UploadWizard(artist="Ada", user_id="u1")
    wizard.start(["/1.jpg", "/2.jpg", "/3.jpg"])
    wizard.choose_mode("series")
    wizard.set_series_info("Test Series", "A shared description.")
    wizard.set_note(1, "Second one is special.")
    drafts = wizard.review()
    assert len(drafts) == 3
    wizard.back()
    assert wizard.step is Step.INDIVIDUAL_NOTES
    wizard.review()
    records = wizard.publish()
    assert wizard.step is Step.PUBLISHED
    assert len(records) == 3
    assert all(r.series_name == "Test Series" for r in records)
    assert len({r.id for r in records}) == 3
    assert records[0].description == "A shared description."
    assert records[1].description == "A shared description.\n\nSecond one is special."
    assert records[2].description == "A shared description."
    assert [r.series_order for r in records] == [0, 1, 2]


def test_build_series_records_requires_a_name():
    with pytest.raises(WizardError):
        build_series_records("  ", "desc", ["/a.jpg"])


def test_parse_text_document():
    assert parse_text_document("\n\nSunrise\nFirst line.\nSecond line.\n") == ("Sunrise", "First line.\nSecond line.")
    long_line = "x" * 150
    assert parse_text_document(long_line + "\nmore") == ("", long_line + "\nmore")
    assert parse_text_document("   \n") == ("", "")


def failing_save(_):
    raise RemoteError("db down")


def test_failed_save_keeps_the_approval_draft():
    wizard = UploadWizard()
    wizard.start(["/a.jpg"])
    wizard.choose_mode("single")
    run_questions(wizard)
    title = wizard.title
    with pytest.raises(RemoteError):
        wizard.approve(save=failing_save)
    assert wizard.step is Step.APPROVAL
    assert wizard.title == title

    saved = wizard.approve(save=lambda r: r.model_copy(update={"artist": "Saved"}))
    assert saved.artist == "Saved"
    assert wizard.step is Step.SAVED


def test_failed_save_keeps_the_series_in_review():
    wizard = UploadWizard()
    wizard.start(["/1.jpg", "/2.jpg"])
    wizard.choose_mode("series")
    wizard.set_series_info("Waves")
    wizard.review()
    with pytest.raises(RemoteError):
        wizard.publish(save=failing_save)
    assert wizard.step is Step.REVIEW
    assert len(wizard.publish(save=lambda rs: rs)) == 2
    assert wizard.step is Step.PUBLISHED
