"""Pre-recorded audio files and the fixed choice tables read to callers.

All audio files are WAV, PCM 16-bit, 8000 Hz mono, uploaded to the
provider's panel ahead of time.  Flows reference them by file name only.
"""

from __future__ import annotations


class Audio:
    # Main menu
    WELCOME = "welcome"
    MAIN_MENU_OPTIONS = "034"

    # Jobs menu
    JOBS_MENU_OPTIONS = "032"
    AREA_OPTIONS = "009"
    NO_JOBS_FOUND = "036"
    ENTER_MIN_SALARY = "020"
    ENTER_MAX_SALARY = "018"
    SALARY_OR_GLOBAL = "salary_or_global"
    ENTER_MIN_AGE = "019"
    ENTER_MAX_AGE = "017"

    # Job readout
    JOB_NAME = "027"
    JOB_AREA = "025"
    JOB_DIFFICULTY = "026"
    JOB_SALARY = "030"
    SHEKEL_PER_HOUR = "shekel_per_hour"
    GLOBAL_PAYMENT = "023"
    SUITABLE_FOR_EVERYONE = "066"
    SUITABLE_MEN = "067"
    SUITABLE_WOMEN = "069"
    FROM_AGE = "060"
    FOUND_JOBS = "071"
    JOBS_PLURAL = "074"
    JOB_NUMBER = "073"
    JOB_DETAILS_OPTIONS = "072"
    PHONE_NUMBER_CONTACT = "078"
    JOB_NAVIGATION = "028"
    ALL_JOBS_DONE = "008"
    CONTACT_DETAILS_INTRO = "013"

    # Relative posting date
    POSTED_AT = "096"
    TODAY = "098"
    YESTERDAY = "102"
    BEFORE_TWO_DAYS = "089"
    BEFORE = "088"
    DAYS_AGO = "090"
    AT_HOUR = "087"

    # Payment method readout
    PAYMENT_METHOD_PROMPT = "063"
    PAYMENT_CASH = "062"
    PAYMENT_PAYSLIP = "064"
    PAYMENT_BIT = "061"

    # Post job
    POST_JOB_INTRO = "post_job_intro"
    NO_NAME_TRY_AGAIN = "037"
    JOB_TITLE_RECORDED = "031"
    CONFIRM_OR_RERECORD = "012"
    SELECT_JOB_AREA = "select_job_area"
    DIFFICULTY_OPTIONS = "014"
    DATE_SELECTION_PROMPT = "058"
    PAYMENT_TYPE_SELECT = "044"
    ENTER_HOURLY_RATE = "016"
    ENTER_GLOBAL_AMOUNT = "015"
    SUITABILITY_SELECT = "suitability_select"
    ENTER_MINIMUM_AGE = "021"
    PHONE_NUMBER_OPTIONS = "045"
    ENTER_PHONE_NUMBER = "022"
    CONFIRM_JOB_DETAILS = "010"
    CONFIRM_OR_EDIT = "011"
    JOB_PUBLISHED_SUCCESS = "029"
    PUBLISH_CANCELLED = "publish_cancelled"
    PUBLISH_ERROR = "publish_error"

    # Payment, poster
    PAYMENT_INTRO_POSTER = "040"
    POST_JOB_PRICE_DETAILS = "post_job_price_details"
    POST_PAYMENT_BENEFITS = "post_payment_benefits"
    TO_CONTINUE_PAYMENT_PRESS_1 = "to_continue_payment_press_1"
    TO_CANCEL_PRESS_2 = "to_cancel_press_2"

    # Payment, viewer
    PAYMENT_INTRO_VIEWER = "041"
    SUBSCRIPTION_OPTION_FULL = "subscription_option_full"
    SINGLE_PAYMENT_OPTION_FULL = "single_payment_option_full"
    PAYMENT_CHOICE_PROMPT = "payment_choice_prompt"

    # Payment, common
    SHEKELS = "shekels"
    SHEKELS_PER_MONTH = "shekels_per_month"
    PAYMENT_INSTRUCTIONS = "039"
    PAYMENT_SUCCESSFUL_VIEWER = "043"
    PAYMENT_SUCCESSFUL_POSTER = "042"
    PAYMENT_FAILED = "038"
    PAYMENT_CANCELLED_BY_USER = "payment_cancelled_by_user"

    # Alerts (tzintuk)
    ALERTS_INTRO = "003"
    ALERTS_SUBSCRIBE_OPTIONS = "097"
    ALERTS_FILTER_OPTIONS = "002"
    ALERTS_SUBSCRIBED = "091"
    ALERTS_SUBSCRIBED_FILTERED = "086"
    ALERTS_ALREADY_ACTIVE = "085"
    ALERTS_MANAGE_OPTIONS = "alerts_manage_options"
    ALERTS_LEGAL_NOTICE = "004"
    ALERTS_UNSUBSCRIBE_CONFIRM = "006"
    ALERTS_UNSUBSCRIBED = "007"
    NIGHT_MODE_QUESTION = "093"
    NIGHT_MODE_ENABLED = "092"

    # Unsubscribe / pause
    UNSUBSCRIBE_MENU = "099"
    NOT_SUBSCRIBED = "094"
    UNSUBSCRIBED_SUCCESSFULLY = "101"
    PAUSED_SUCCESSFULLY = "095"

    # Contact
    CONTACT_MENU = "contact_menu"
    LEAVE_MESSAGE_INTRO = "033"
    MESSAGE_SAVED_THANKS = "035"

    # Errors and common
    INVALID_CHOICE_TRY_AGAIN = "024"
    SYSTEM_ERROR = "081"
    PHONE_NOT_IDENTIFIED = "077"
    REGISTRATION_ERROR = "079"
    SYSTEM_ERROR_TRY_LATER = "system_error_try_later"
    GOODBYE = "goodbye"


# Digit -> city, in the order the area prompt (009) reads them.
CITIES: dict[str, str] = {
    "1": "ירושלים",
    "2": "בני ברק",
    "3": "אשדוד",
    "4": "מודיעין עילית",
    "5": "ביתר עילית",
    "6": "אלעד",
    "7": "צפת",
    "8": "פתח תקווה",
    "9": "חיפה",
}

# The composer also offers "other" on 0.
POSTING_AREAS: dict[str, str] = {**CITIES, "0": "אחר"}
UNSPECIFIED_AREA = "לא צוין"

CITY_AUDIO: dict[str, str] = {
    "ירושלים": "054",
    "בני ברק": "051",
    "אשדוד": "049",
    "מודיעין עילית": "055",
    "מודיעין עלית": "055",
    "ביתר עילית": "050",
    "אלעד": "052",
    "צפת": "057",
    "פתח תקווה": "056",
    "חיפה": "053",
    "כל הארץ": "048",
    "ארצי": "048",
    "jerusalem": "054",
    "bnei brak": "051",
    "ashdod": "049",
}

# Provider alert-list name -> city name spoken to the caller.
LIST_NAME_TO_HEBREW: dict[str, str] = {
    "jerusalem": "ירושלים",
    "bnei_brak": "בני ברק",
    "ashdod": "אשדוד",
    "modiin_illit": "מודיעין עילית",
    "beitar_illit": "ביתר עילית",
    "elad": "אלעד",
    "tzfat": "צפת",
    "petach_tikva": "פתח תקווה",
    "haifa": "חיפה",
    "all_country": "כל הארץ",
}


def city_audio(name: str) -> str | None:
    """Return the pre-recorded file for a city name, or None."""
    if not name:
        return None
    if name in CITY_AUDIO:
        return CITY_AUDIO[name]
    normalized = name.strip().lower()
    for key, value in CITY_AUDIO.items():
        if key.lower() == normalized:
            return value
    return None
