"""Guided upload: questionnaire, text generation and series publishing."""
import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import WizardError
from .records import ArtworkRecord
from .utils import new_artwork_ids

logger = logging.getLogger(__name__)

MOODS = ["Peaceful", "Energetic", "Melancholic", "Joyful", "Mysterious", "Dreamy", "Bold", "Nostalgic"]
THEMES = ["Nature", "Urban", "Cosmos", "Ocean", "Memory", "Identity", "Light", "Movement"]
STYLES = ["Abstract", "Surreal", "Minimal", "Geometric", "Impressionist", "Digital", "Mixed Media", "Photographic"]

MAX_TITLE_LINE = 100


@dataclass(frozen=True)
class Question:
    key: str
    prompt: str
    options: Tuple[str, ...] = ()

    @property
    def free_text(self) -> bool:
        return not self.options


QUESTIONS: Tuple[Question, ...] = (
    Question("mood", "What mood does this piece carry?", tuple(MOODS)),
    Question("theme", "What is it about?", tuple(THEMES)),
    Question("style", "How would you describe the style?", tuple(STYLES)),
    Question("inspiration", "What inspired it? (optional)"),
    Question("message", "Anything you want viewers to take away? (optional)"),
)

_NOUNS = {
    "Nature": ["Bloom", "Canopy", "Meadow", "Wildwood", "Tide Pool"],
    "Urban": ["Skyline", "Crossing", "Concrete", "Neon", "Alleyway"],
    "Cosmos": ["Nebula", "Orbit", "Starfall", "Eclipse", "Void"],
    "Ocean": ["Current", "Undertow", "Swell", "Shoreline", "Deep"],
    "Memory": ["Echo", "Keepsake", "Afterimage", "Return", "Trace"],
    "Identity": ["Mirror", "Self", "Mask", "Threshold", "Name"],
    "Light": ["Glow", "Prism", "Dawn", "Flicker", "Halo"],
    "Movement": ["Drift", "Pulse", "Rush", "Spiral", "Flight"],
}

_TITLE_TEMPLATES = [
    "{mood} {noun}",
    "The {mood} {noun}",
    "{noun} in {style}",
    "Whispers of {theme}",
    "{theme}, {mood}",
    "A {mood} {theme}",
    "{noun} Study",
    "Beyond the {noun}",
]

_OPENERS = [
    "A {mood} meditation on {theme}, rendered in a {style} language.",
    "This {style} piece carries a {mood} charge through its take on {theme}.",
    "{theme} becomes something {mood} here, filtered through a {style} eye.",
    "Working in a {style} register, the artist turns {theme} into a {mood} encounter.",
]
_MIDDLES = [
    "Colour and form pull against each other, leaving room for the viewer to settle in.",
    "Layers build slowly, and each return to the surface reveals something new.",
    "Its composition rewards a second look, shifting as the light in the room changes.",
    "Texture and rhythm do most of the talking.",
]
_INSPIRATION = [
    "It grew out of {inspiration}.",
    "The starting point was {inspiration}.",
    "Inspired by {inspiration}.",
]
_MESSAGE = [
    "The artist hopes it leaves you with this: {message}.",
    "Its quiet message: {message}.",
]


def _clean(value: Optional[str]) -> str:
    return " ".join((value or "").split())


def _fields(answers: Dict[str, str], rng: random.Random) -> Dict[str, str]:
    theme = _clean(answers.get("theme")) or "Light"
    return {
        "mood": _clean(answers.get("mood")) or "Quiet",
        "theme": theme,
        "style": _clean(answers.get("style")) or "Abstract",
        "noun": rng.choice(_NOUNS.get(theme, ["Form"])),
    }


def generate_title(answers: Dict[str, str], rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    values = _fields(answers, rng)
    title = rng.choice(_TITLE_TEMPLATES).format(**values)
    return title[:1].upper() + title[1:]


def generate_description(answers: Dict[str, str], rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    values = _fields(answers, rng)
    lowered = {k: (v.lower() if k != "style" else v) for k, v in values.items()}
    parts = [rng.choice(_OPENERS).format(**lowered), rng.choice(_MIDDLES)]
    inspiration = _clean(answers.get("inspiration")).rstrip(".")
    if inspiration:
        parts.append(rng.choice(_INSPIRATION).format(inspiration=inspiration))
    message = _clean(answers.get("message")).rstrip(".")
    if message:
        parts.append(rng.choice(_MESSAGE).format(message=message))
    text = " ".join(parts)
    return text[:1].upper() + text[1:]


def parse_text_document(text: str) -> Tuple[str, str]:
    """Split an uploaded text file into (title, body).

    The first non-blank line becomes the title when it is short enough,
    otherwise the title is left empty and everything is body.
    """
    lines = (text or "").replace("\r\n", "\n").split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        return "", ""
    first = lines[0].strip()
    if len(first) <= MAX_TITLE_LINE:
        return first, "\n".join(lines[1:]).strip()
    return "", "\n".join(lines).strip()


def build_series_records(
    series_name: str,
    description: str,
    image_urls: List[str],
    notes: Optional[Dict[int, str]] = None,
    artist: str = "",
    user_id: Optional[str] = None,
    categories: Iterable[str] = (),
    existing_ids: Iterable[str] = (),
) -> List[ArtworkRecord]:
    series_name = _clean(series_name)
    if not series_name:
        raise WizardError("series name is required")
    if not image_urls:
        raise WizardError("a series needs at least one image")
    notes = notes or {}
    ids = new_artwork_ids(len(image_urls), existing_ids)
    records = []
    for i, (artwork_id, url) in enumerate(zip(ids, image_urls)):
        text = (description or "").strip()
        note = (notes.get(i) or "").strip()
        if note:
            text = f"{text}\n\n{note}" if text else note
        records.append(ArtworkRecord(
            id=artwork_id,
            title=f"{series_name} #{i + 1}",
            artist=artist,
            categories=list(categories),
            description=text,
            image_url=url,
            series_name=series_name,
            series_order=i,
            user_id=user_id,
            is_new=True,
        ))
    return records


class Mode(str, enum.Enum):
    SINGLE = "single"
    SERIES = "series"


class Step(str, enum.Enum):
    IDLE = "idle"
    SELECT_MODE = "select_mode"
    QUESTION = "question"
    APPROVAL = "approval"
    SAVED = "saved"
    SERIES_INFO = "series_info"
    INDIVIDUAL_NOTES = "individual_notes"
    REVIEW = "review"
    PUBLISHED = "published"


_BACK = {
    Step.SELECT_MODE: Step.IDLE,
    Step.SERIES_INFO: Step.SELECT_MODE,
    Step.INDIVIDUAL_NOTES: Step.SERIES_INFO,
    Step.REVIEW: Step.INDIVIDUAL_NOTES,
}


@dataclass
class UploadWizard:
    """Per-upload state machine.

    single: select_mode -> question(0..4) -> approval -> saved
    series: select_mode -> series_info -> individual_notes -> review -> published

    Nothing leaves the wizard until `approve` or `publish` hands back the
    draft records.
    """

    artist: str = ""
    user_id: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    step: Step = Step.IDLE
    mode: Optional[Mode] = None
    images: List[str] = field(default_factory=list)
    question_index: int = 0
    answers: Dict[str, str] = field(default_factory=dict)
    title: str = ""
    description: str = ""
    custom: bool = False
    series_name: str = ""
    series_description: str = ""
    notes: Dict[int, str] = field(default_factory=dict)

    def _expect(self, *steps: Step) -> None:
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise WizardError(f"not allowed in step {self.step.value} (expected {allowed})")

    def _reset(self) -> None:
        self.mode = None
        self.images = []
        self.question_index = 0
        self.answers = {}
        self.title = self.description = ""
        self.custom = False
        self.series_name = self.series_description = ""
        self.notes = {}

    @property
    def current_question(self) -> Optional[Question]:
        if self.step is Step.QUESTION:
            return QUESTIONS[self.question_index]
        return None

    def start(self, image_urls: List[str]) -> None:
        self._expect(Step.IDLE, Step.SAVED, Step.PUBLISHED)
        urls = [u for u in image_urls if u]
        if not urls:
            raise WizardError("upload at least one image")
        self._reset()
        self.images = urls
        self.step = Step.SELECT_MODE

    def choose_mode(self, mode: str) -> None:
        self._expect(Step.SELECT_MODE)
        try:
            mode = Mode(mode)
        except ValueError:
            raise WizardError(f"unknown mode: {mode}") from None
        if mode is Mode.SERIES and len(self.images) < 2:
            raise WizardError("series mode needs more than one image")
        if mode is Mode.SINGLE and len(self.images) != 1:
            raise WizardError("single mode takes exactly one image")
        self.mode = mode
        if mode is Mode.SERIES:
            self.step = Step.SERIES_INFO
        else:
            self.question_index = 0
            self.step = Step.QUESTION

    def answer(self, value: Optional[str]) -> None:
        self._expect(Step.QUESTION)
        question = QUESTIONS[self.question_index]
        value = _clean(value)
        if not question.free_text:
            match = next((o for o in question.options if o.casefold() == value.casefold()), None)
            if match is None:
                raise WizardError(f"{question.key} must be one of: {', '.join(question.options)}")
            value = match
        self.answers[question.key] = value
        if self.question_index + 1 < len(QUESTIONS):
            self.question_index += 1
            return
        self.custom = False
        self._generate()
        self.step = Step.APPROVAL

    def _generate(self) -> None:
        self.title = generate_title(self.answers, self.rng)
        self.description = generate_description(self.answers, self.rng)

    def regenerate(self) -> None:
        self._expect(Step.APPROVAL)
        missing = [q.key for q in QUESTIONS if not q.free_text and not self.answers.get(q.key)]
        if missing:
            raise WizardError(f"answer {', '.join(missing)} before generating")
        self.custom = False
        self._generate()

    def use_custom(self, title: str, description: str = "") -> None:
        self._expect(Step.QUESTION, Step.APPROVAL)
        title = _clean(title)
        if not title:
            raise WizardError("a custom title is required")
        self.title = title
        self.description = (description or "").strip()
        self.custom = True
        self.step = Step.APPROVAL

    def approve(
        self,
        existing_ids: Iterable[str] = (),
        save: Optional[Callable[[ArtworkRecord], ArtworkRecord]] = None,
    ) -> ArtworkRecord:
        """Hand back the draft record; the step only advances once `save` succeeds."""
        self._expect(Step.APPROVAL)
        theme = self.answers.get("theme")
        categories = list(self.categories) or ([theme.lower()] if theme else [])
        record = ArtworkRecord(
            id=new_artwork_ids(1, existing_ids)[0],
            title=self.title,
            artist=self.artist,
            style=self.answers.get("style", ""),
            categories=categories,
            description=self.description,
            image_url=self.images[0],
            user_id=self.user_id,
            is_new=True,
        )
        if save is not None:
            record = save(record)
        self.step = Step.SAVED
        logger.info("Upload wizard approved artwork %s (%r)", record.id, record.title)
        return record

    def set_series_info(self, name: str, description: str = "") -> None:
        self._expect(Step.SERIES_INFO)
        name = _clean(name)
        if not name:
            raise WizardError("series name is required")
        self.series_name = name
        self.series_description = (description or "").strip()
        self.step = Step.INDIVIDUAL_NOTES

    def set_note(self, index: int, note: str) -> None:
        self._expect(Step.INDIVIDUAL_NOTES)
        if not 0 <= index < len(self.images):
            raise WizardError(f"no image at position {index}")
        note = (note or "").strip()
        if note:
            self.notes[index] = note
        else:
            self.notes.pop(index, None)

    def review(self) -> List[ArtworkRecord]:
        self._expect(Step.INDIVIDUAL_NOTES)
        self.step = Step.REVIEW
        return self._series_records(())

    def publish(
        self,
        existing_ids: Iterable[str] = (),
        save: Optional[Callable[[List[ArtworkRecord]], List[ArtworkRecord]]] = None,
    ) -> List[ArtworkRecord]:
        self._expect(Step.REVIEW)
        records = self._series_records(existing_ids)
        if save is not None:
            records = save(records)
        self.step = Step.PUBLISHED
        logger.info("Upload wizard published series %r with %d artworks", self.series_name, len(records))
        return records

    def _series_records(self, existing_ids: Iterable[str]) -> List[ArtworkRecord]:
        return build_series_records(
            self.series_name,
            self.series_description,
            self.images,
            self.notes,
            artist=self.artist,
            user_id=self.user_id,
            categories=self.categories,
            existing_ids=existing_ids,
        )

    def back(self) -> None:
        if self.step is Step.QUESTION:
            if self.question_index > 0:
                self.question_index -= 1
            else:
                self.step = Step.SELECT_MODE
            return
        if self.step is Step.APPROVAL:
            self.step = Step.QUESTION
            self.question_index = len(QUESTIONS) - 1
            return
        if self.step in _BACK:
            self.step = _BACK[self.step]
            if self.step is Step.IDLE:
                self._reset()
            return
        raise WizardError(f"cannot go back from {self.step.value}")

    def cancel(self) -> None:
        self._reset()
        self.step = Step.IDLE

    def snapshot(self) -> dict:
        question = self.current_question
        return {
            "step": self.step.value,
            "mode": self.mode.value if self.mode else None,
            "images": list(self.images),
            "question": None if question is None else {
                "index": self.question_index,
                "key": question.key,
                "prompt": question.prompt,
                "options": list(question.options),
            },
            "answers": dict(self.answers),
            "title": self.title,
            "description": self.description,
            "custom": self.custom,
            "series_name": self.series_name,
            "series_description": self.series_description,
            "notes": {str(k): v for k, v in self.notes.items()},
        }
