"""
Ballot validation.

A vote payload maps question ids to the selected option ids. Questions are
checked in ballot order and the first violation is reported; nothing is
written unless every question validates.
"""
from typing import Mapping, Sequence

from ballotbox.core.exceptions import ValidationFailed
from ballotbox.schemas.poll import BallotQuestion


def validate_vote_payload(
    ballot: Sequence[BallotQuestion],
    payload: Mapping[str, Sequence[str]],
) -> None:
    """Raise ValidationFailed naming the first question that fails."""
    known_questions = {question.id for question in ballot}

    for question in ballot:
        selections = list(payload.get(question.id) or [])

        if len(selections) < question.min_selection:
            raise ValidationFailed(
                f'Too few selections: please select at least {question.min_selection} '
                f'option(s) for "{question.title}"',
                details=[{"field": question.id, "message": "too few selections"}],
            )

        if len(selections) > question.max_selection:
            raise ValidationFailed(
                f'Too many selections: please select at most {question.max_selection} '
                f'option(s) for "{question.title}"',
                details=[{"field": question.id, "message": "too many selections"}],
            )

        invalid = [option_id for option_id in selections if option_id not in question.option_ids]
        if invalid:
            raise ValidationFailed(
                f'Invalid option selections for "{question.title}"',
                details=[{"field": question.id, "message": "invalid option", "options": invalid}],
            )

        if len(set(selections)) != len(selections):
            raise ValidationFailed(
                f'Duplicate option selections for "{question.title}"',
                details=[{"field": question.id, "message": "duplicate option"}],
            )

    unknown = sorted(set(payload) - known_questions)
    if unknown:
        raise ValidationFailed(
            "Votes submitted for questions not on the ballot",
            details=[{"field": question_id, "message": "unknown question"} for question_id in unknown],
        )
