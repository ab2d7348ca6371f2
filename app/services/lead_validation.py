# app/services/lead_validation.py
from __future__ import annotations

import re
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.schemas.lead_capture import LeadFormData, LeadInsert, ValidationErrors

# Domínios de email descartáveis mais comuns (match exato)
DISPOSABLE_DOMAINS = frozenset({
    "mailinator.com", "guerrillamail.com", "tempmail.com", "throwaway.email",
    "yopmail.com", "sharklasers.com", "guerrillamailblock.com", "grr.la",
    "dispostable.com", "trashmail.com", "fakeinbox.com", "maildrop.cc",
    "temp-mail.org", "10minutemail.com", "minutemail.com", "tempail.com",
    "emailondeck.com", "getnada.com", "mohmal.com", "burnermail.io",
})

PREFERENCES_OPTIONS = (
    "Pratos Executivos",
    "Marmitas",
    "Sobremesas",
    "Bebidas",
    "Delivery",
    "Eventos & Encomendas",
)

MIN_NAME_LENGTH = 3
MIN_AGE = 18
MIN_BIRTH_YEAR = 1900

_NAME_RE = re.compile(r"[A-Za-zÀ-ÖØ-öø-ÿ\s]+")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_BIRTHDAY_RE = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
_NON_DIGITS_RE = re.compile(r"\D")
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_DANGEROUS_CHARS_RE = re.compile(r"[<>\"'`;]")


# --------------------------------------------------
# Validadores (um por campo)
# --------------------------------------------------
def validate_name(value: str) -> Optional[str]:
    """Nome: mín 3 chars, apenas letras (inclusive acentos) e espaços."""
    trimmed = (value or "").strip()
    if not trimmed:
        return "Nome é obrigatório"
    if len(trimmed) < MIN_NAME_LENGTH:
        return "Nome deve ter pelo menos 3 caracteres"
    if not _NAME_RE.fullmatch(trimmed):
        return "Nome deve conter apenas letras e espaços"
    return None


def validate_email(value: str) -> Optional[str]:
    """Email: formato válido + bloqueio de domínios descartáveis."""
    trimmed = (value or "").strip().lower()
    if not trimmed:
        return "Email é obrigatório"
    if not _EMAIL_RE.fullmatch(trimmed):
        return "Formato de email inválido"
    domain = trimmed.split("@", 1)[1]
    if domain in DISPOSABLE_DOMAINS:
        return "Por favor, use um email permanente"
    return None


def validate_phone(value: str) -> Optional[str]:
    """Telefone brasileiro: DDD + número, 10 (fixo) ou 11 (celular) dígitos."""
    digits = digits_only(value)
    if not digits:
        return "Telefone é obrigatório"
    if len(digits) not in (10, 11):
        return "Número de telefone inválido"
    return None


def validate_birthday(value: str, today: Optional[date] = None) -> Optional[str]:
    """
    Data de nascimento opcional, DD/MM/AAAA.
    Precisa ser uma data real, ano entre 1900 e o ano corrente, idade >= 18.
    """
    value = (value or "").strip()
    if not value:
        return None  # campo opcional

    match = _BIRTHDAY_RE.fullmatch(value)
    if not match:
        return "Formato inválido (DD/MM/AAAA)"

    day, month, year = (int(g) for g in match.groups())
    today = today or date.today()

    if month < 1 or month > 12:
        return "Mês inválido"
    if day < 1 or day > 31:
        return "Dia inválido"
    if year < MIN_BIRTH_YEAR or year > today.year:
        return "Ano inválido"

    try:
        born = date(year, month, day)
    except ValueError:
        # 30/02, 31/04 etc.
        return "Data inválida"

    if age_on(born, today) < MIN_AGE:
        return "Idade mínima: 18 anos"
    return None


def validate_preferences(value: Iterable[str]) -> Optional[str]:
    for pref in value or []:
        if pref not in PREFERENCES_OPTIONS:
            return f"Preferência inválida: {pref}"
    return None


def validate_terms(value: Any) -> Optional[str]:
    if value is not True:
        return "Você precisa aceitar os termos para continuar"
    return None


FIELD_VALIDATORS: Dict[str, Callable[[Any], Optional[str]]] = {
    "name": validate_name,
    "email": validate_email,
    "phone": validate_phone,
    "birthday": validate_birthday,
    "preferences": validate_preferences,
    "terms": validate_terms,
}


# tipo esperado do valor cru de cada campo (None = campo vazio)
FIELD_TYPES: Dict[str, type] = {
    "name": str,
    "email": str,
    "phone": str,
    "birthday": str,
    "preferences": list,
    "terms": bool,
    "website": str,
}


def check_field_type(field: str, value: Any) -> Optional[str]:
    """Mensagem de erro se o valor não tem o tipo do campo; None se ok."""
    expected = FIELD_TYPES[field]
    if value is None or isinstance(value, expected):
        return None
    return f"Valor inválido para '{field}': esperado {expected.__name__}, recebido {type(value).__name__}"


def validate_field(field: str, value: Any) -> Optional[str]:
    """Validação de um único campo (on-blur). KeyError para campo desconhecido."""
    return FIELD_VALIDATORS[field](value)


def validate_lead_form(data: LeadFormData) -> ValidationErrors:
    """Executa todas as validações; o dicionário é sempre recalculado do zero."""
    values = {
        "name": data.name,
        "email": data.email,
        "phone": data.phone,
        "birthday": data.birthday,
        "preferences": data.preferences,
        "terms": data.terms_accepted,
    }
    errors: ValidationErrors = {}
    for field, validator in FIELD_VALIDATORS.items():
        message = validator(values[field])
        if message:
            errors[field] = message
    return errors


def age_on(born: date, today: date) -> int:
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


# --------------------------------------------------
# Formatadores / normalização
# --------------------------------------------------
def digits_only(value: str) -> str:
    return _NON_DIGITS_RE.sub("", value or "")


def format_phone_input(value: str) -> str:
    """
    Máscara de telefone enquanto o usuário digita.
    Até 10 dígitos: (DD) DDDD-DDDD; 11 dígitos: (DD) DDDDD-DDDD.
    Aplicar duas vezes dá o mesmo resultado.
    """
    digits = digits_only(value)[:11]
    if len(digits) <= 2:
        return digits
    if len(digits) <= 6:
        return f"({digits[:2]}) {digits[2:]}"
    if len(digits) <= 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"


def format_birthday_input(value: str) -> str:
    """Máscara DD/MM/AAAA enquanto o usuário digita."""
    digits = digits_only(value)[:8]
    if len(digits) <= 2:
        return digits
    if len(digits) <= 4:
        return f"{digits[:2]}/{digits[2:]}"
    return f"{digits[:2]}/{digits[2:4]}/{digits[4:]}"


def birthday_to_iso(value: str) -> Optional[str]:
    """Converte DD/MM/AAAA -> AAAA-MM-DD; vazio ou inválido vira None."""
    match = _BIRTHDAY_RE.fullmatch((value or "").strip())
    if not match:
        return None
    day, month, year = match.groups()
    return f"{year}-{month}-{day}"


def sanitize(value: str) -> str:
    """Remove tags HTML e caracteres perigosos."""
    value = _HTML_TAG_RE.sub("", value or "")
    return _DANGEROUS_CHARS_RE.sub("", value).strip()


def unique_preferences(preferences: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for pref in preferences or []:
        if pref not in seen:
            seen.append(pref)
    return seen


def build_payload(data: LeadFormData) -> LeadInsert:
    """Monta o payload normalizado para o insert no Supabase."""
    prefs = unique_preferences(data.preferences)
    return LeadInsert(
        name=sanitize(data.name),
        email=sanitize(data.email).lower(),
        phone=digits_only(data.phone),
        birthday=birthday_to_iso(data.birthday),
        preferences=", ".join(prefs) if prefs else None,
        promo_code=None,
    )
