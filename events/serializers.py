from rest_framework import serializers
from rest_framework.settings import api_settings

from core.exceptions import ValidationError
from .models import Event, Festival, Registration
from .submission import MAIN_FILE_FIELD, member_file_fields
from .validators import (
    InvalidValue,
    file_problems,
    normalize_phone,
    require_text,
    sanitize_query,
    sanitize_text,
    validate_email,
    validate_phone,
    validate_team_size,
    validate_year,
)


# -----------------------------------------
# PARTICIPANT (main participant + team members)
# -----------------------------------------
class ParticipantSerializer(serializers.Serializer):
    """
    Every field defaults to "" so that the rules below (not DRF's generic
    "This field is required.") produce the messages, for every field at once.

    Context:
      - academic_only: enforce the academic email allow-list
      - default_college: used when college is left blank
    """
    name = serializers.CharField(default="", allow_blank=True)
    email = serializers.CharField(default="", allow_blank=True)
    phone = serializers.CharField(default="", allow_blank=True)
    rollNo = serializers.CharField(default="", allow_blank=True)
    course = serializers.CharField(default="", allow_blank=True)
    year = serializers.CharField(default="", allow_blank=True)
    college = serializers.CharField(default="", allow_blank=True)
    otherCollege = serializers.CharField(default="", allow_blank=True)

    def _rule(self, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except InvalidValue as e:
            raise serializers.ValidationError(str(e))

    def validate_name(self, value):
        return self._rule(require_text, value, "Name")

    def validate_email(self, value):
        return self._rule(validate_email, value, academic_only=self.context.get("academic_only", False))

    def validate_phone(self, value):
        return self._rule(validate_phone, value)

    def validate_rollNo(self, value):
        return self._rule(require_text, value, "Roll No.", max_length=50)

    def validate_course(self, value):
        return self._rule(require_text, value, "Course", max_length=100)

    def validate_year(self, value):
        return self._rule(validate_year, value)

    def validate_college(self, value):
        if not sanitize_text(value) and self.context.get("default_college"):
            return self.context["default_college"]
        return self._rule(require_text, value, "College")

    def validate_otherCollege(self, value):
        return sanitize_text(value, max_length=255)


class RegistrationSubmissionSerializer(serializers.Serializer):
    teamName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    mainParticipant = ParticipantSerializer()
    teamMembers = ParticipantSerializer(many=True, required=False)
    query = serializers.CharField(required=False, allow_blank=True)

    def validate_teamName(self, value):
        return sanitize_text(value, max_length=255)

    def validate_query(self, value):
        return sanitize_query(value)


def flatten_errors(errors, prefix=""):
    """DRF's nested error structure -> [{"field": "teamMembers[1].phone", "reason": ...}, ...]"""
    if isinstance(errors, dict):
        for key, value in errors.items():
            if key == api_settings.NON_FIELD_ERRORS_KEY:
                name = prefix or key
            else:
                name = f"{prefix}.{key}" if prefix else key
            yield from flatten_errors(value, name)
    elif isinstance(errors, list):
        if all(isinstance(item, str) for item in errors):
            for item in errors:
                yield {"field": prefix, "reason": str(item)}
        else:
            for index, item in enumerate(errors):
                yield from flatten_errors(item, f"{prefix}[{index}]")
    else:
        yield {"field": prefix, "reason": str(errors)}


def _missing_other_college(main, members):
    """College "Other" needs the name spelled out in otherCollege."""
    participants = [("mainParticipant", main)]
    participants += [(f"teamMembers[{i}]", member) for i, member in enumerate(members)]
    return [
        {"field": f"{prefix}.otherCollege", "reason": "Please enter your college name"}
        for prefix, participant in participants
        if sanitize_text(participant.get("college")).lower() == "other"
        and not sanitize_text(participant.get("otherCollege"))
    ]


def _team_conflicts(main, members):
    """Emails/phones repeated inside one submission."""
    problems = []
    seen_emails = {str(main.get("email", "")).strip().lower()}
    seen_phones = {normalize_phone(main.get("phone"))}
    for index, member in enumerate(members):
        email = str(member.get("email", "")).strip().lower()
        phone = normalize_phone(member.get("phone"))
        if email and email in seen_emails:
            problems.append({
                "field": f"teamMembers[{index}].email",
                "reason": (
                    f"You cannot use the same email address ({email}) for multiple team members. "
                    "Each team member must have a unique email address."
                ),
            })
        if phone and phone in seen_phones:
            problems.append({
                "field": f"teamMembers[{index}].phone",
                "reason": (
                    f"You cannot use the same phone number ({phone}) for multiple team members. "
                    "Each team member must have a unique phone number."
                ),
            })
        seen_emails.add(email)
        seen_phones.add(phone)
    return problems


def validate_registration(event, submission, default_college=None) -> dict:
    """
    Full validation of a parsed submission against ``event``.

    Returns the cleaned record (same shape as the submission, files included)
    or raises ValidationError listing every offending field.
    """
    errors = list(submission.get("errors") or [])

    serializer = RegistrationSubmissionSerializer(
        data={
            "teamName": submission["teamName"],
            "mainParticipant": submission["mainParticipant"],
            "teamMembers": submission["teamMembers"],
            "query": submission["query"],
        },
        context={
            "academic_only": event.email_policy == Event.EMAIL_POLICY_ACADEMIC,
            "default_college": default_college,
        },
    )
    if not serializer.is_valid():
        errors.extend(flatten_errors(serializer.errors))

    try:
        validate_team_size(len(submission["teamMembers"]), event.team_size_min, event.team_size_max)
    except InvalidValue as e:
        errors.append({"field": "teamMembers", "reason": str(e)})

    errors.extend(_missing_other_college(submission["mainParticipant"], submission["teamMembers"]))
    errors.extend(_team_conflicts(submission["mainParticipant"], submission["teamMembers"]))

    main_file = submission["files"]["main"]
    if main_file is None:
        if event.requires_college_id:
            errors.append({"field": MAIN_FILE_FIELD, "reason": "College ID is required"})
    else:
        errors.extend({"field": MAIN_FILE_FIELD, "reason": p} for p in file_problems(main_file))

    member_uploads = submission["files"]["members"]
    for field, upload in zip(member_file_fields(submission["files"], len(member_uploads)), member_uploads):
        if upload is not None:
            errors.extend({"field": field, "reason": p} for p in file_problems(upload))

    if errors:
        raise ValidationError(errors)

    cleaned = dict(serializer.validated_data)
    cleaned.setdefault("teamName", "")
    cleaned.setdefault("query", "")
    cleaned["mainParticipant"] = dict(cleaned["mainParticipant"])
    cleaned["teamMembers"] = [dict(member) for member in cleaned.get("teamMembers", [])]
    cleaned["files"] = submission["files"]
    return cleaned


# -----------------------------------------
# READ SERIALIZERS
# -----------------------------------------
class EventSerializer(serializers.ModelSerializer):
    eventId = serializers.CharField(source="slug", read_only=True)
    teamSize = serializers.SerializerMethodField()
    registrationStatus = serializers.CharField(source="registration_status", read_only=True)
    isTeamEvent = serializers.BooleanField(source="is_team_event", read_only=True)
    whatsappGroup = serializers.CharField(source="whatsapp_group", read_only=True)
    festDay = serializers.CharField(source="fest_day", read_only=True)

    class Meta:
        model = Event
        fields = [
            "eventId",
            "name",
            "kind",
            "category",
            "description",
            "isTeamEvent",
            "teamSize",
            "registrationStatus",
            "whatsappGroup",
            "venue",
            "festDay",
            "date",
            "time",
        ]

    def get_teamSize(self, obj):
        return obj.team_size


class RegistrationRecordSerializer(serializers.ModelSerializer):
    """Camel-cased view of a stored registration, as the admin panel consumes it."""
    eventId = serializers.CharField(source="event.slug", read_only=True)
    eventName = serializers.CharField(source="event_name", read_only=True)
    isTeamEvent = serializers.BooleanField(source="is_team_event", read_only=True)
    teamName = serializers.CharField(source="team_name", read_only=True)
    mainParticipant = serializers.JSONField(source="main_participant", read_only=True)
    teamMembers = serializers.JSONField(source="team_members", read_only=True)
    collegeIdUrl = serializers.CharField(source="college_id_url", read_only=True)
    registrationDate = serializers.DateTimeField(source="registration_date", read_only=True)

    class Meta:
        model = Registration
        fields = [
            "id",
            "eventId",
            "eventName",
            "isTeamEvent",
            "teamName",
            "mainParticipant",
            "teamMembers",
            "collegeIdUrl",
            "query",
            "registrationDate",
        ]


class FestivalSerializer(serializers.ModelSerializer):
    registrationEnabled = serializers.BooleanField(source="registration_enabled", read_only=True)
    defaultWhatsappGroup = serializers.CharField(source="default_whatsapp_group", read_only=True)

    class Meta:
        model = Festival
        fields = ["name", "registrationEnabled", "defaultWhatsappGroup", "info"]
