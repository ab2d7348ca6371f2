# app/services/lead_score.py
from __future__ import annotations

from app.schemas.lead_capture import LeadQuality, LeadScoreInputs


def lead_score_points(inputs: LeadScoreInputs) -> int:
    score = 0

    if inputs.time_on_page_seconds > 120:
        score += 2
    elif inputs.time_on_page_seconds > 60:
        score += 1

    if inputs.scroll_depth_percent >= 75:
        score += 2
    elif inputs.scroll_depth_percent >= 50:
        score += 1

    if inputs.cta_clicks >= 2:
        score += 1
    if inputs.section_views >= 4:
        score += 1
    if inputs.completed_optional_fields >= 2:
        score += 1

    return score


def calculate_lead_score(inputs: LeadScoreInputs) -> LeadQuality:
    """
    Qualidade do lead a partir do comportamento na página.
    Só enriquece o evento de analytics; nunca bloqueia o envio.
    """
    score = lead_score_points(inputs)
    if score >= 6:
        return "high"
    if score >= 3:
        return "medium"
    return "low"
