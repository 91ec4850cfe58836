"""Language catalog for narration and voice commands.

Every lookup takes a language code such as ``hi-IN``. Unknown codes fall back
to the default English entry so a session never fails on an unsupported
language, it just speaks English phrasing.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from models.schemas import DEFAULT_LANGUAGE


@dataclass(frozen=True)
class TimeWords:
    minute: str
    minutes: str
    second: str
    seconds: str
    takes: str
    and_word: str


@dataclass(frozen=True)
class LanguageConfig:
    code: str
    label: str
    start_command: str
    say_prompt: str
    step_template: str
    time_words: TimeWords
    completion_text: str
    time_increase_template: Optional[str] = None
    time_decrease_template: Optional[str] = None


_ENGLISH_TIME = TimeWords("minute", "minutes", "second", "seconds", "This step takes approximately", "and")
_ENGLISH_PROMPT = "Say 'start' when you're ready."
_ENGLISH_COMPLETE = "Congratulations! You have completed the recipe."
_ENGLISH_INCREASE = "Cooking time increases by approximately {percent}% for {servings} servings."
_ENGLISH_DECREASE = "Cooking time decreases by approximately {percent}% for {servings} servings."

LANGUAGES: List[LanguageConfig] = [
    LanguageConfig(
        code="en-IN",
        label="English (Indian)",
        start_command="start",
        say_prompt=_ENGLISH_PROMPT,
        step_template="Step {num} of {total}",
        time_words=_ENGLISH_TIME,
        completion_text=_ENGLISH_COMPLETE,
        time_increase_template=_ENGLISH_INCREASE,
        time_decrease_template=_ENGLISH_DECREASE,
    ),
    LanguageConfig(
        code="en-GB",
        label="English (British)",
        start_command="start",
        say_prompt=_ENGLISH_PROMPT,
        step_template="Step {num} of {total}",
        time_words=_ENGLISH_TIME,
        completion_text=_ENGLISH_COMPLETE,
    ),
    LanguageConfig(
        code="en-US",
        label="English (American)",
        start_command="start",
        say_prompt=_ENGLISH_PROMPT,
        step_template="Step {num} of {total}",
        time_words=_ENGLISH_TIME,
        completion_text=_ENGLISH_COMPLETE,
    ),
    LanguageConfig(
        code="hi-IN",
        label="Hindi",
        start_command="शुरू",
        say_prompt="'शुरू' बोलें जब आप तैयार हों",
        step_template="कदम {num} का {total}",
        time_words=TimeWords("मिनट", "मिनट", "सेकंड", "सेकंड", "यह कदम लगभग लेता है", "और"),
        completion_text="बधाई हो! आपने रेसिपी पूरी कर ली है।",
        time_increase_template="{servings} सर्विंग्स के लिए खाना पकाने का समय लगभग {percent}% बढ़ जाता है।",
        time_decrease_template="{servings} सर्विंग्स के लिए खाना पकाने का समय लगभग {percent}% कम हो जाता है।",
    ),
    LanguageConfig(
        code="bn-IN",
        label="Bengali",
        start_command="শুরু",
        say_prompt="'শুরু' বলুন যখন আপনি প্রস্তুত",
        step_template="ধাপ {num} এর {total}",
        time_words=TimeWords("মিনিট", "মিনিট", "সেকেন্ড", "সেকেন্ড", "এই ধাপে প্রায় সময় লাগে", "এবং"),
        completion_text="অভিনন্দন! আপনি রেসিপিটি সম্পূর্ণ করেছেন।",
        time_increase_template="{servings} পরিবেশনের জন্য রান্নার সময় প্রায় {percent}% বৃদ্ধি পায়।",
        time_decrease_template="{servings} পরিবেশনের জন্য রান্নার সময় প্রায় {percent}% হ্রাস পায়।",
    ),
    LanguageConfig(
        code="ta-IN",
        label="Tamil",
        start_command="தொடங்கு",
        say_prompt="நீங்கள் தயாராக இருக்கும்போது 'தொடங்கு' என்று சொல்லுங்கள்",
        step_template="படி {num} / {total}",
        time_words=TimeWords("நிமிடம்", "நிமிடங்கள்", "விநாடி", "விநாடிகள்", "இந்த படி தோராயமாக எடுக்கும்", "மற்றும்"),
        completion_text="வாழ்த்துக்கள்! நீங்கள் சமையல் குறிப்பை முடித்துவிட்டீர்கள்.",
        time_increase_template="{servings} பரிமாறுதல்களுக்கு சமையல் நேரம் சுமார் {percent}% அதிகரிக்கிறது।",
        time_decrease_template="{servings} பரிமாறுதல்களுக்கு சமையல் நேரம் சுமார் {percent}% குறைகிறது।",
    ),
    LanguageConfig(
        code="es-ES",
        label="Spanish",
        start_command="empezar",
        say_prompt="Di 'empezar' cuando estés listo",
        step_template="Paso {num} de {total}",
        time_words=TimeWords("minuto", "minutos", "segundo", "segundos", "Este paso toma aproximadamente", "y"),
        completion_text="¡Felicidades! Has completado la receta.",
    ),
    LanguageConfig(
        code="fr-FR",
        label="French",
        start_command="commencer",
        say_prompt="Dites 'commencer' quand vous êtes prêt",
        step_template="Étape {num} sur {total}",
        time_words=TimeWords("minute", "minutes", "seconde", "secondes", "Cette étape prend environ", "et"),
        completion_text="Félicitations ! Vous avez terminé la recette.",
    ),
    LanguageConfig(
        code="de-DE",
        label="German",
        start_command="start",
        say_prompt="Sagen Sie 'start', wenn Sie bereit sind",
        step_template="Schritt {num} von {total}",
        time_words=TimeWords("Minute", "Minuten", "Sekunde", "Sekunden", "Dieser Schritt dauert ungefähr", "und"),
        completion_text="Herzlichen Glückwunsch! Sie haben das Rezept abgeschlossen.",
    ),
    LanguageConfig(
        code="ar-SA",
        label="Arabic",
        start_command="ابدأ",
        say_prompt="قل 'ابدأ' عندما تكون جاهزاً",
        step_template="الخطوة {num} من {total}",
        time_words=TimeWords("دقيقة", "دقائق", "ثانية", "ثواني", "تستغرق هذه الخطوة تقريباً", "و"),
        completion_text="تهانينا! لقد أكملت الوصفة.",
    ),
]

_BY_CODE: Dict[str, LanguageConfig] = {lang.code: lang for lang in LANGUAGES}

# Names used when asking the LLM to write the recipe in a given language
LANGUAGE_NAMES: Dict[str, str] = {
    "en-IN": "English",
    "en-GB": "English",
    "en-US": "English",
    "hi-IN": "Hindi",
    "mr-IN": "Marathi",
    "bn-IN": "Bengali",
    "pa-IN": "Punjabi",
    "ta-IN": "Tamil",
    "te-IN": "Telugu",
    "kn-IN": "Kannada",
    "ml-IN": "Malayalam",
    "gu-IN": "Gujarati",
    "es-ES": "Spanish",
    "fr-FR": "French",
    "de-DE": "German",
    "ar-SA": "Arabic",
}

WELL_SUPPORTED_RECOGNITION = {"en-IN", "en-GB", "en-US", "es-ES", "fr-FR", "de-DE"}


def get_language(code: Optional[str]) -> LanguageConfig:
    """Return the catalog entry for ``code``, falling back to the default."""
    if code and code in _BY_CODE:
        return _BY_CODE[code]
    return _BY_CODE[DEFAULT_LANGUAGE]


def is_supported(code: Optional[str]) -> bool:
    return bool(code) and code in _BY_CODE


def get_start_command(code: Optional[str]) -> str:
    return get_language(code).start_command


def get_step_text(code: Optional[str], step_number: int, total_steps: int) -> str:
    return get_language(code).step_template.format(num=step_number, total=total_steps)


def get_time_text(code: Optional[str], total_seconds: int) -> str:
    """Render a duration like "This step takes approximately 5 minutes and 30 seconds."."""
    words = get_language(code).time_words
    minutes, seconds = divmod(max(int(total_seconds), 0), 60)
    parts = []
    if minutes > 0:
        parts.append(f"{minutes} {words.minutes if minutes > 1 else words.minute}")
    if seconds > 0:
        parts.append(f"{seconds} {words.seconds if seconds > 1 else words.second}")
    if not parts:
        return ""
    return f"{words.takes} {f' {words.and_word} '.join(parts)}."


def get_language_name(code: Optional[str]) -> str:
    return LANGUAGE_NAMES.get(code or "", "English")


def get_time_adjustment_template(code: Optional[str], increase: bool) -> str:
    lang = get_language(code)
    template = lang.time_increase_template if increase else lang.time_decrease_template
    if template:
        return template
    default = _BY_CODE[DEFAULT_LANGUAGE]
    return default.time_increase_template if increase else default.time_decrease_template


def get_language_support_note(code: Optional[str]) -> Optional[str]:
    if code in WELL_SUPPORTED_RECOGNITION:
        return None
    return (
        "Note: Speech recognition support for this language may vary by engine. "
        "You can always use the manual controls instead."
    )
