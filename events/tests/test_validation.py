import json

from django.test import SimpleTestCase, TestCase
from django.utils.datastructures import MultiValueDict
from django.http import QueryDict

from core.exceptions import ValidationError
from events.models import Event
from events.serializers import flatten_errors, validate_registration
from events.submission import parse_submission
from events.tests.factories import college_id, make_event, participant, team_member
from events.validators import (
    InvalidValue,
    file_problems,
    is_academic_domain,
    is_placeholder_email,
    sanitize_query,
    validate_email,
    validate_phone,
    validate_team_size,
    validate_year,
)


class FieldRuleTests(SimpleTestCase):
    def test_email_rules(self):
        self.assertEqual(validate_email("  Riya.Sharma@DU.ac.in "), "riya.sharma@du.ac.in")
        self.assertEqual(validate_email("riya@gmail.com"), "riya@gmail.com")

        for bad in ("", "riya", "riya@du", ".riya@du.ac.in"):
            with self.assertRaises(InvalidValue):
                validate_email(bad)

    def test_placeholder_addresses(self):
        self.assertTrue(is_placeholder_email("admin@du.ac.in"))
        self.assertTrue(is_placeholder_email("dummy.user@du.ac.in"))
        self.assertTrue(is_placeholder_email("noreply@du.ac.in"))
        self.assertFalse(is_placeholder_email("riya.sharma@du.ac.in"))
        with self.assertRaisesMessage(InvalidValue, "Please use your real email address"):
            validate_email("fake123@du.ac.in")

    def test_academic_allow_list(self):
        self.assertTrue(is_academic_domain("riya@du.ac.in"))
        self.assertTrue(is_academic_domain("riya@cs.du.ac.in"))
        self.assertFalse(is_academic_domain("riya@notdu.ac.in"))
        with self.assertRaisesMessage(InvalidValue, "Please use your college email ID"):
            validate_email("riya.sharma@gmail.com", academic_only=True)

    def test_phone_rules(self):
        self.assertEqual(validate_phone("98765 43210"), "9876543210")
        self.assertEqual(validate_phone("98765-43210"), "9876543210")
        with self.assertRaisesMessage(InvalidValue, "exactly 10 digits"):
            validate_phone("98765")
        with self.assertRaisesMessage(InvalidValue, "valid Indian mobile number"):
            validate_phone("1234567890")

    def test_year_choices(self):
        self.assertEqual(validate_year("3rd Year"), "3rd Year")
        with self.assertRaises(InvalidValue):
            validate_year("4th Year")

    def test_query_markup_is_removed(self):
        self.assertEqual(sanitize_query("<script>alert(1)</script>Hello"), "alert(1)Hello")
        self.assertEqual(sanitize_query(None), "")

    def test_file_size_and_type_are_checked_independently(self):
        upload = college_id(name="id.exe", content_type="application/x-msdownload", content=b"\x00" * 2048)
        problems = file_problems(upload, max_size=1024)
        self.assertEqual(len(problems), 2)
        self.assertIn("exceeds the maximum limit", problems[0])
        self.assertIn("not accepted", problems[1])

        self.assertEqual(file_problems(college_id()), [])

    def test_upload_limits(self):
        mib = 1024 * 1024
        too_big = college_id(name="id.pdf", content_type="application/pdf", content=b"\x00" * (5 * mib + 1))
        wrong_type = college_id(name="id.txt", content_type="text/plain", content=b"\x00" * (4 * mib))
        fine = college_id(name="id.pdf", content_type="application/pdf", content=b"\x00" * (2 * mib))

        self.assertEqual(len(file_problems(too_big)), 1)
        self.assertEqual(len(file_problems(wrong_type)), 1)
        self.assertEqual(file_problems(fine), [])

    def test_team_size_messages(self):
        self.assertEqual(validate_team_size(2, 2, 4), 3)
        with self.assertRaisesMessage(InvalidValue, "requires exactly 2 participants (got 1)"):
            validate_team_size(0, 2, 2)
        with self.assertRaisesMessage(InvalidValue, "between 2 and 4 participants (got 5)"):
            validate_team_size(4, 2, 4)


class ParseSubmissionTests(SimpleTestCase):
    def test_flat_fields_and_numbered_members(self):
        data = QueryDict(mutable=True)
        data.update(participant())
        data["teamName"] = "Null Pointers"
        data["teamMember1"] = json.dumps(team_member())
        data["teamMember2"] = json.dumps(team_member(email="kabir.singh@du.ac.in"))
        files = MultiValueDict({"collegeId": [college_id()], "teamMember2CollegeId": [college_id()]})

        submission = parse_submission(data, files)

        self.assertEqual(submission["teamName"], "Null Pointers")
        self.assertEqual(submission["mainParticipant"]["email"], "riya.sharma@du.ac.in")
        self.assertEqual(len(submission["teamMembers"]), 2)
        self.assertIsNotNone(submission["files"]["main"])
        self.assertIsNone(submission["files"]["members"][0])
        self.assertIsNotNone(submission["files"]["members"][1])

    def test_missing_values_become_blank(self):
        submission = parse_submission({"mainParticipant": {"name": "Riya", "email": None}})
        self.assertEqual(submission["mainParticipant"]["email"], "")
        self.assertEqual(submission["mainParticipant"]["otherCollege"], "")
        self.assertEqual(submission["teamMembers"], [])
        self.assertEqual(submission["files"], {"main": None, "members": [], "memberFields": []})
        self.assertEqual(submission["errors"], [])

    def test_members_must_be_a_list(self):
        submission = parse_submission({"mainParticipant": participant(), "teamMembers": '{"name": "x"}'})
        self.assertEqual(submission["errors"], [{"field": "teamMembers", "reason": "Expected a list"}])
        self.assertEqual(submission["teamMembers"], [])

    def test_undecodable_blobs_are_collected(self):
        data = QueryDict(mutable=True)
        data.update(participant())
        data["teamMember1"] = "{not json"
        data["teamMember2"] = json.dumps(team_member())

        submission = parse_submission(data)

        self.assertEqual(submission["errors"], [{"field": "teamMember1", "reason": "Malformed JSON"}])
        self.assertEqual(len(submission["teamMembers"]), 2)
        self.assertEqual(submission["teamMembers"][0]["email"], "")
        self.assertEqual(submission["teamMembers"][1]["email"], "arjun.mehta@du.ac.in")

    def test_member_upload_follows_form_index(self):
        data = QueryDict(mutable=True)
        data.update(participant())
        data["teamMember2"] = json.dumps(team_member())
        stray, own = college_id(name="stray.png"), college_id(name="own.png")
        files = MultiValueDict({"teamMember1CollegeId": [stray], "teamMember2CollegeId": [own]})

        submission = parse_submission(data, files)

        self.assertEqual(len(submission["teamMembers"]), 1)
        self.assertIs(submission["files"]["members"][0], own)
        self.assertEqual(submission["files"]["memberFields"], ["teamMember2CollegeId"])


class FlattenErrorsTests(SimpleTestCase):
    def test_nested_errors_get_dotted_names(self):
        errors = {
            "mainParticipant": {"email": ["Invalid email address"]},
            "teamMembers": [{}, {"phone": ["Phone number is required"]}],
        }
        self.assertEqual(
            list(flatten_errors(errors)),
            [
                {"field": "mainParticipant.email", "reason": "Invalid email address"},
                {"field": "teamMembers[1].phone", "reason": "Phone number is required"},
            ],
        )


class ValidateRegistrationTests(TestCase):
    def setUp(self):
        self.event = make_event(is_team_event=True, team_size_min=1, team_size_max=3)

    def submission(self, main=None, members=None, main_file=True):
        members = members or []
        return {
            "teamName": "",
            "mainParticipant": main or participant(),
            "teamMembers": members,
            "query": "",
            "files": {"main": college_id() if main_file else None, "members": [None] * len(members)},
        }

    def test_clean_record(self):
        record = validate_registration(self.event, self.submission(main=participant(email="Riya.Sharma@du.ac.in")))
        self.assertEqual(record["mainParticipant"]["email"], "riya.sharma@du.ac.in")
        self.assertIn("files", record)

    def test_errors_from_every_stage_are_collected(self):
        self.event.requires_college_id = True
        members = [
            team_member(email="riya.sharma@du.ac.in"),
            team_member(email="kabir.singh@du.ac.in", phone="9988776655"),
            team_member(email="meera.nair@du.ac.in", phone="9876501234"),
        ]
        with self.assertRaises(ValidationError) as ctx:
            validate_registration(
                self.event,
                self.submission(main=participant(phone="12"), members=members, main_file=False),
            )

        fields = ctx.exception.fields
        self.assertIn("mainParticipant.phone", fields)
        self.assertIn("teamMembers", fields)
        self.assertIn("teamMembers[0].email", fields)
        self.assertIn("collegeId", fields)

    def test_optional_college_id(self):
        self.event.requires_college_id = False
        record = validate_registration(self.event, self.submission(main_file=False))
        self.assertIsNone(record["files"]["main"])

    def test_academic_policy(self):
        self.event.email_policy = Event.EMAIL_POLICY_ACADEMIC
        with self.assertRaises(ValidationError) as ctx:
            validate_registration(self.event, self.submission(main=participant(email="riya@gmail.com")))
        self.assertEqual(ctx.exception.fields, ["mainParticipant.email"])

    def test_parse_errors_are_merged_with_field_errors(self):
        submission = self.submission(main=participant(phone="12"))
        submission["errors"] = [{"field": "teamMembers", "reason": "Malformed JSON"}]

        with self.assertRaises(ValidationError) as ctx:
            validate_registration(self.event, submission)
        self.assertEqual(ctx.exception.fields, ["teamMembers", "mainParticipant.phone"])

    def test_other_college_is_checked_for_every_participant(self):
        members = [team_member(college="Other", phone="98765 12345")]
        with self.assertRaises(ValidationError) as ctx:
            validate_registration(
                self.event,
                self.submission(main=participant(college="Other", email="bad"), members=members),
            )
        fields = ctx.exception.fields
        self.assertIn("mainParticipant.email", fields)
        self.assertIn("mainParticipant.otherCollege", fields)
        self.assertIn("teamMembers[0].otherCollege", fields)

    def test_team_phones_are_compared_normalised(self):
        members = [team_member(phone="98765 43210")]
        with self.assertRaises(ValidationError) as ctx:
            validate_registration(self.event, self.submission(members=members))
        self.assertEqual(ctx.exception.fields, ["teamMembers[0].phone"])
