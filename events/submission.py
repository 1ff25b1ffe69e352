# websters-backend/events/submission.py
"""
Turns a raw registration request into one explicit structure.

The registration form posts either flat multipart fields for the main
participant, or a ``mainParticipant`` JSON blob; team members arrive as a
``teamMembers`` JSON array or as ``teamMember1``..``teamMember3`` blobs; each
participant may attach an identity proof. Everything downstream works on the
dict returned by ``parse_submission`` and never looks at the request again.
"""
import json

from django.conf import settings

PARTICIPANT_FIELDS = ("name", "email", "phone", "rollNo", "course", "year", "college", "otherCollege")

MAIN_FILE_FIELD = "collegeId"


def member_key(index: int) -> str:
    """Form key of the 1-based team member blob."""
    return f"teamMember{index}"


def member_file_field(index: int) -> str:
    return f"teamMember{index}CollegeId"


def _load_json(raw, field, errors):
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        errors.append({"field": field, "reason": "Malformed JSON"})
        return None


def _participant(raw, field, errors):
    blob = _load_json(raw, field, errors)
    if blob is None:
        return None
    if not isinstance(blob, dict):
        errors.append({"field": field, "reason": "Expected an object"})
        return None
    return {name: blob.get(name) or "" for name in PARTICIPANT_FIELDS}


def _blank_participant():
    return {name: "" for name in PARTICIPANT_FIELDS}


def _main_participant(data, errors):
    raw = data.get("mainParticipant")
    if raw:
        return _participant(raw, "mainParticipant", errors) or _blank_participant()
    return {name: data.get(name) or "" for name in PARTICIPANT_FIELDS}


def _team_members(data, max_members, errors):
    """Returns ``[(form_index, participant), ...]``; form_index is 1-based."""
    raw = data.get("teamMembers")
    if raw:
        members = _load_json(raw, "teamMembers", errors)
        if members is None:
            return []
        if not isinstance(members, list):
            errors.append({"field": "teamMembers", "reason": "Expected a list"})
            return []
        parsed = [
            (i + 1, _participant(member, f"teamMembers[{i}]", errors))
            for i, member in enumerate(members)
        ]
        return [(index, member or _blank_participant()) for index, member in parsed]

    # Numbered blobs; scan one past the limit so an extra member still counts
    # towards the team size check
    members = []
    for index in range(1, max_members + 2):
        blob = data.get(member_key(index))
        if blob:
            member = _participant(blob, member_key(index), errors)
            members.append((index, member or _blank_participant()))
    return members


def member_file_fields(files, count):
    """Form field of each member's upload, aligned with ``teamMembers``."""
    fields = list(files.get("memberFields") or [])
    fields += [member_file_field(i) for i in range(len(fields) + 1, count + 1)]
    return fields[:count]


def parse_submission(data, files=None) -> dict:
    """
    Returns::

        {
            "teamName": str,
            "mainParticipant": {...},
            "teamMembers": [{...}, ...],
            "query": str,
            "files": {
                "main": <upload|None>,
                "members": [<upload|None>, ...],
                "memberFields": ["teamMember1CollegeId", ...],
            },
            "errors": [{"field": ..., "reason": ...}, ...],
        }

    ``files["members"][i]`` belongs to ``teamMembers[i]`` and was posted as
    ``files["memberFields"][i]``. Blobs that cannot be decoded are reported in
    ``errors`` and stand in as blank participants, so field validation still
    runs over the rest of the form.
    """
    files = files or {}
    max_members = settings.REGISTRATION["MAX_TEAM_MEMBERS"]
    errors = []

    numbered = _team_members(data, max_members, errors)
    member_fields = [member_file_field(index) for index, _ in numbered]

    return {
        "teamName": data.get("teamName") or "",
        "mainParticipant": _main_participant(data, errors),
        "teamMembers": [member for _, member in numbered],
        "query": data.get("query") or "",
        "files": {
            "main": files.get(MAIN_FILE_FIELD),
            "members": [files.get(field) for field in member_fields],
            "memberFields": member_fields,
        },
        "errors": errors,
    }
