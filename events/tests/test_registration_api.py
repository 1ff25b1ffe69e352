import json
import smtplib
from unittest import mock

from django.conf import settings
from django.core import mail
from django.core.cache import cache
from django.test import override_settings
from rest_framework.test import APITestCase
from rest_framework import status

from core import tokens
from core.exceptions import UploadError
from core.mail import reset_transport_pool
from core.models import StoredFile
from events.emails import NotificationDispatcher
from events.models import Event, Festival, Registration
from events.tasks import send_registration_emails_task
from events.tests.factories import (
    college_id,
    make_event,
    make_registration,
    participant,
    registration_form,
    team_member,
)


class RegistrationApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        reset_transport_pool()
        self.event = make_event()
        self.url = f"/api/events/{self.event.slug}/register/"

    def register(self, form=None):
        return self.client.post(self.url, form or registration_form(), format="multipart")

    def test_valid_registration_is_stored_and_confirmed(self):
        resp = self.register()
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)

        data = resp.json()
        self.assertTrue(data["success"])
        self.assertFalse(data["alreadyRegistered"])
        self.assertTrue(data["emailSent"])
        self.assertEqual(data["eventName"], "Code Relay")
        self.assertEqual(data["whatsappLink"], "https://chat.whatsapp.com/coderelay")
        self.assertEqual(tokens.resolve(data["registrationToken"]), "riya.sharma@du.ac.in")

        reg = Registration.objects.get(event=self.event)
        self.assertEqual(reg.main_email, "riya.sharma@du.ac.in")
        self.assertEqual(reg.main_phone, "9876543210")
        self.assertEqual(reg.event_name, "Code Relay")

        stored = StoredFile.objects.get(section=StoredFile.SECTION_REGISTRATIONS)
        self.assertEqual(reg.college_id_url, stored.path)
        self.assertTrue(stored.filename.startswith("collegeId_Riya_Sharma_Shivaji_College_Code_Relay_"))

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["riya.sharma@du.ac.in"])
        self.assertIn("Code Relay", mail.outbox[0].subject)

    def test_json_submission_without_file_when_not_required(self):
        self.event.requires_college_id = False
        self.event.save()

        resp = self.client.post(
            self.url,
            {"mainParticipant": participant(), "query": "<b>Is parking available?</b>"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)

        reg = Registration.objects.get(event=self.event)
        self.assertEqual(reg.college_id_url, "")
        self.assertEqual(reg.query, "Is parking available?")

    def test_second_submission_is_reported_as_already_registered(self):
        self.assertEqual(self.register().status_code, status.HTTP_200_OK)
        mail.outbox = []

        resp = self.register()
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()
        self.assertTrue(data["success"])
        self.assertTrue(data["alreadyRegistered"])
        self.assertFalse(data["emailSent"])
        self.assertIn("already registered", data["message"])
        self.assertIn("an individual participant", data["message"])
        self.assertEqual(tokens.resolve(data["registrationToken"]), "riya.sharma@du.ac.in")

        # No second row, no second upload, no second email
        self.assertEqual(Registration.objects.filter(event=self.event).count(), 1)
        self.assertEqual(StoredFile.objects.count(), 1)
        self.assertEqual(mail.outbox, [])

    def test_same_phone_with_new_email_is_already_registered(self):
        self.register()

        form = registration_form(main=participant(email="riya.s@du.ac.in"))
        data = self.register(form).json()

        self.assertTrue(data["alreadyRegistered"])
        self.assertIn("phone number 9876543210", data["message"])
        # Token points at the registration that holds the phone number
        self.assertEqual(tokens.resolve(data["registrationToken"]), "riya.sharma@du.ac.in")
        self.assertEqual(Registration.objects.count(), 1)

    def test_email_is_matched_case_insensitively(self):
        self.register()
        data = self.register(registration_form(main=participant(email="Riya.Sharma@DU.ac.in"))).json()
        self.assertTrue(data["alreadyRegistered"])

    def test_every_invalid_field_is_reported(self):
        form = registration_form(main=participant(email="not-an-email", phone="12345", year="", name=""))
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        data = resp.json()
        self.assertFalse(data["success"])
        fields = {item["field"] for item in data["details"]}
        self.assertEqual(
            fields,
            {
                "mainParticipant.email",
                "mainParticipant.phone",
                "mainParticipant.year",
                "mainParticipant.name",
            },
        )
        self.assertFalse(Registration.objects.exists())
        self.assertFalse(StoredFile.objects.exists())
        self.assertEqual(mail.outbox, [])

    def test_placeholder_email_is_rejected(self):
        resp = self.register(registration_form(main=participant(email="test@du.ac.in")))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["details"][0]["field"], "mainParticipant.email")

    def test_missing_college_id(self):
        resp = self.register(registration_form(with_files=False))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["details"], [{"field": "collegeId", "reason": "College ID is required"}])

    def test_wrong_file_type_is_rejected(self):
        form = registration_form(with_files=False)
        form["collegeId"] = college_id(name="id.txt", content_type="text/plain", content=b"hello")
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        reasons = [item["reason"] for item in resp.json()["details"]]
        self.assertEqual(len(reasons), 1)
        self.assertIn('"text/plain" not accepted', reasons[0])

    def test_oversized_file_is_rejected(self):
        limits = dict(settings.REGISTRATION, MAX_UPLOAD_SIZE=1024)
        with override_settings(REGISTRATION=limits):
            form = registration_form(with_files=False)
            form["collegeId"] = college_id(content=b"\x00" * 2048)
            resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("exceeds the maximum limit", resp.json()["details"][0]["reason"])

    def test_other_college_needs_a_name(self):
        resp = self.register(registration_form(main=participant(college="Other")))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["details"][0]["field"], "mainParticipant.otherCollege")

    def test_other_college_is_reported_with_other_field_errors(self):
        resp = self.register(registration_form(main=participant(college="Other", phone="123")))

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        fields = [item["field"] for item in resp.json()["details"]]
        self.assertIn("mainParticipant.phone", fields)
        self.assertIn("mainParticipant.otherCollege", fields)

    def test_malformed_members_are_reported_with_field_errors(self):
        form = registration_form(main=participant(email="riya", phone="123"))
        form["teamMembers"] = "{not json"
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        fields = [item["field"] for item in resp.json()["details"]]
        self.assertEqual(fields[0], "teamMembers")
        self.assertIn("mainParticipant.email", fields)
        self.assertIn("mainParticipant.phone", fields)
        self.assertFalse(Registration.objects.exists())

    def test_malformed_participant_json(self):
        form = registration_form()
        form["mainParticipant"] = "{not json"
        resp = self.register(form)
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["details"][0]["field"], "mainParticipant")

    def test_email_failure_does_not_fail_registration(self):
        with mock.patch.object(
            NotificationDispatcher, "_deliver", side_effect=smtplib.SMTPException("Connection refused")
        ):
            resp = self.register()

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()
        self.assertTrue(data["success"])
        self.assertFalse(data["emailSent"])
        self.assertTrue(Registration.objects.filter(main_email="riya.sharma@du.ac.in").exists())

    def test_confirmation_can_be_queued(self):
        options = dict(settings.REGISTRATION, EMAILS_ASYNC=True)
        with override_settings(REGISTRATION=options), \
                mock.patch("events.tasks.send_registration_emails_task.delay") as delay:
            resp = self.register()

        data = resp.json()
        self.assertTrue(data["emailQueued"])
        self.assertFalse(data["emailSent"])
        event_id, record = delay.call_args.args
        self.assertEqual(event_id, self.event.pk)
        self.assertNotIn("files", record)
        self.assertEqual(record["mainParticipant"]["email"], "riya.sharma@du.ac.in")
        self.assertEqual(mail.outbox, [])

    def test_unreachable_broker_falls_back_to_inline_mail(self):
        options = dict(settings.REGISTRATION, EMAILS_ASYNC=True)
        with override_settings(REGISTRATION=options), \
                mock.patch(
                    "events.tasks.send_registration_emails_task.delay",
                    side_effect=ConnectionError("broker down"),
                ), \
                self.assertLogs("websters.events", level="WARNING"):
            resp = self.register()

        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)
        data = resp.json()
        self.assertTrue(data["success"])
        self.assertTrue(data["emailSent"])
        self.assertNotIn("emailQueued", data)
        self.assertEqual(Registration.objects.count(), 1)
        self.assertEqual([m.to for m in mail.outbox], [["riya.sharma@du.ac.in"]])

    def test_lost_insert_race_is_already_registered(self):
        make_registration(self.event)

        with mock.patch("events.workflow.DuplicateGuard.check"):
            resp = self.register()

        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)
        data = resp.json()
        self.assertTrue(data["alreadyRegistered"])
        self.assertEqual(data["registrationToken"], tokens.issue("riya.sharma@du.ac.in"))
        self.assertEqual(Registration.objects.count(), 1)

    def test_queued_task_sends_confirmation(self):
        record = {"teamName": "", "mainParticipant": participant(), "teamMembers": [], "query": ""}

        result = send_registration_emails_task(self.event.pk, record)

        self.assertTrue(result["sent"])
        self.assertEqual([m.to for m in mail.outbox], [["riya.sharma@du.ac.in"]])
        self.assertEqual(send_registration_emails_task(999999, record)["error"], "event_not_found")

    def test_closed_event_rejects_registrations(self):
        self.event.registration_status = Event.STATUS_CLOSED
        self.event.save()

        resp = self.register()
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(resp.json()["success"], False)
        self.assertIn("closed", resp.json()["error"])
        self.assertFalse(Registration.objects.exists())

    def test_festival_switch_closes_every_event(self):
        festival = Festival.load()
        festival.registration_enabled = False
        festival.save()

        resp = self.register()
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(resp.json()["error"], "Registrations are currently closed")

    def test_unknown_event(self):
        resp = self.client.post("/api/events/no-such-event/register/", registration_form(), format="multipart")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.json(), {"success": False, "error": "Event not found"})

    def test_whatsapp_link_falls_back_to_festival_default(self):
        self.event.whatsapp_group = ""
        self.event.save()
        Festival.objects.filter(pk=Festival.load().pk).update(
            default_whatsapp_group="https://chat.whatsapp.com/techelons"
        )

        data = self.register().json()
        self.assertEqual(data["whatsappLink"], "https://chat.whatsapp.com/techelons")
        html = mail.outbox[0].alternatives[0][0]
        self.assertIn('href="https://chat.whatsapp.com/techelons"', html)


class TeamRegistrationApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        reset_transport_pool()
        self.event = make_event(
            slug="hackathon",
            name="Hackathon",
            is_team_event=True,
            team_size_min=2,
            team_size_max=4,
        )
        self.url = f"/api/events/{self.event.slug}/register/"

    def register(self, form):
        return self.client.post(self.url, form, format="multipart")

    def test_team_registration_stores_members_and_mails_everyone(self):
        form = registration_form(members=[team_member()], teamName="Null Pointers")
        resp = self.register(form)
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)
        self.assertNotIn("teamEmailErrors", resp.json())

        reg = Registration.objects.get(event=self.event)
        self.assertTrue(reg.is_team_event)
        self.assertEqual(reg.team_name, "Null Pointers")
        self.assertEqual(len(reg.team_members), 1)
        self.assertEqual(reg.team_members[0]["email"], "arjun.mehta@du.ac.in")
        self.assertTrue(reg.team_members[0]["collegeIdUrl"].startswith("/api/core/files/"))

        self.assertEqual(StoredFile.objects.count(), 2)
        recipients = sorted(message.to[0] for message in mail.outbox)
        self.assertEqual(recipients, ["arjun.mehta@du.ac.in", "riya.sharma@du.ac.in"])

    def test_numbered_member_fields(self):
        form = registration_form(teamName="Null Pointers")
        form["teamMember1"] = json.dumps(team_member())
        form["teamMember1CollegeId"] = college_id(name="member.png")

        resp = self.register(form)
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)
        self.assertEqual(len(Registration.objects.get().team_members), 1)

    def test_numbered_member_keeps_its_own_upload(self):
        form = registration_form(teamName="Null Pointers")
        form["teamMember2"] = json.dumps(team_member())
        form["teamMember1CollegeId"] = college_id(name="stray.png")
        form["teamMember2CollegeId"] = college_id(name="arjun.png")

        resp = self.register(form)
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)

        member = Registration.objects.get().team_members[0]
        stored = StoredFile.objects.get(filename__startswith="teamMember2CollegeId_")
        self.assertEqual(member["collegeIdUrl"], stored.path)
        self.assertEqual(stored.original_name, "arjun.png")
        self.assertEqual(StoredFile.objects.count(), 2)

    def test_member_phone_is_compared_after_normalising(self):
        form = registration_form(members=[team_member(phone="98765-43210")])
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            [item["field"] for item in resp.json()["details"]],
            ["teamMembers[0].phone"],
        )
        self.assertFalse(Registration.objects.exists())

    def test_team_too_small(self):
        resp = self.register(registration_form())
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        details = resp.json()["details"]
        self.assertEqual(details[0]["field"], "teamMembers")
        self.assertIn("between 2 and 4", details[0]["reason"])

    def test_member_cannot_reuse_leader_email(self):
        form = registration_form(members=[team_member(email="riya.sharma@du.ac.in")])
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        fields = [item["field"] for item in resp.json()["details"]]
        self.assertEqual(fields, ["teamMembers[0].email"])

    def test_invalid_member_field_is_indexed(self):
        form = registration_form(members=[team_member(phone="555")])
        resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["details"][0]["field"], "teamMembers[0].phone")

    def test_member_already_in_another_team(self):
        self.register(registration_form(members=[team_member()]))

        other_leader = participant(name="Kabir Singh", email="kabir.singh@du.ac.in", phone="9988776655")
        resp = self.register(registration_form(main=other_leader, members=[team_member()]))

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        fields = {item["field"] for item in resp.json()["details"]}
        self.assertEqual(fields, {"teamMembers[0].email", "teamMembers[0].phone"})
        self.assertEqual(Registration.objects.count(), 1)

    def test_member_email_failure_is_reported(self):
        def deliver(pool, message):
            if message.to == ["arjun.mehta@du.ac.in"]:
                raise smtplib.SMTPRecipientsRefused({"arjun.mehta@du.ac.in": (550, b"No such user")})
            with pool.connection() as connection:
                message.connection = connection
                message.send()

        members = [team_member(), team_member(name="Kabir Singh", email="kabir.singh@du.ac.in", phone="9988776655")]
        with mock.patch.object(NotificationDispatcher, "_deliver", side_effect=deliver):
            resp = self.register(registration_form(members=members))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()
        self.assertTrue(data["success"])
        # Reflects the main participant only
        self.assertTrue(data["emailSent"])
        self.assertEqual(sorted(m.to[0] for m in mail.outbox), ["kabir.singh@du.ac.in", "riya.sharma@du.ac.in"])
        self.assertEqual(len(data["teamEmailErrors"]), 1)
        self.assertEqual(data["teamEmailErrors"][0]["email"], "arjun.mehta@du.ac.in")

    def test_pair_event_needs_exactly_one_member(self):
        pair = make_event(slug="pair-programming", name="Pair Programming",
                          is_team_event=True, team_size_min=2, team_size_max=2)
        url = f"/api/events/{pair.slug}/register/"
        extra = team_member(name="Kabir Singh", email="kabir.singh@du.ac.in", phone="9988776655")

        for members in ([], [team_member(), extra]):
            resp = self.client.post(url, registration_form(members=members), format="multipart")
            self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn("teamMembers", [item["field"] for item in resp.json()["details"]])

        resp = self.client.post(url, registration_form(members=[team_member()]), format="multipart")
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)

    def test_member_upload_failure_is_reported_not_fatal(self):
        form = registration_form(members=[team_member()])
        with mock.patch("events.relay.DatabaseSink.store", autospec=True) as store:
            def fake_store(sink, upload, filename):
                if filename.startswith("teamMember1CollegeId"):
                    raise UploadError(f"Failed to store {filename}")
                return "/api/core/files/99/"
            store.side_effect = fake_store
            resp = self.register(form)

        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)
        failed = resp.json()["failedUploads"]
        self.assertEqual(failed[0]["field"], "teamMember1CollegeId")
        self.assertEqual(failed[0]["email"], "arjun.mehta@du.ac.in")
        self.assertEqual(Registration.objects.get().team_members[0]["collegeIdUrl"], "")

    def test_leader_of_existing_team_gets_team_message(self):
        self.register(registration_form(members=[team_member()], teamName="Null Pointers"))
        data = self.register(registration_form(members=[team_member()])).json()

        self.assertTrue(data["alreadyRegistered"])
        self.assertIn('team leader of "Null Pointers"', data["message"])


class WorkshopRegistrationApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        reset_transport_pool()
        self.workshop = make_event(
            slug="web-dev-bootcamp",
            name="Web Dev Bootcamp",
            kind=Event.KIND_WORKSHOP,
            email_policy=Event.EMAIL_POLICY_ACADEMIC,
        )
        self.url = "/api/events/workshop/register/"

    def test_college_defaults_to_host(self):
        form = registration_form(main=participant(college=""))
        resp = self.client.post(self.url, form, format="multipart")
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.content)

        reg = Registration.objects.get(event=self.workshop)
        self.assertEqual(reg.main_participant["college"], "Shivaji College")

    def test_workshop_requires_academic_email(self):
        form = registration_form(main=participant(email="riya.sharma@gmail.com"))
        resp = self.client.post(self.url, form, format="multipart")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            resp.json()["details"],
            [{"field": "mainParticipant.email", "reason": "Please use your college email ID"}],
        )

    def test_no_workshop_configured(self):
        self.workshop.delete()
        resp = self.client.post(self.url, registration_form(), format="multipart")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.json()["error"], "Workshop not found")


class RegistrationDetailsApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        reset_transport_pool()
        self.event = make_event(whatsapp_group="")
        self.client.post(f"/api/events/{self.event.slug}/register/", registration_form(), format="multipart")
        Festival.objects.filter(pk=Festival.load().pk).update(
            default_whatsapp_group="https://chat.whatsapp.com/techelons"
        )

    def test_lookup_by_token(self):
        token = tokens.issue("riya.sharma@du.ac.in")
        resp = self.client.get("/api/events/registration-details/", {"token": token})

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()
        self.assertEqual(data["registration"]["mainParticipant"]["email"], "riya.sharma@du.ac.in")
        self.assertEqual(data["registration"]["eventId"], "code-relay")
        self.assertEqual(data["event"]["whatsappGroup"], "https://chat.whatsapp.com/techelons")

    def test_lookup_by_email_and_event(self):
        resp = self.client.get(
            "/api/events/registration-details/",
            {"email": "riya.sharma@du.ac.in", "eventId": "code-relay"},
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()["event"]["name"], "Code Relay")

    def test_invalid_token(self):
        resp = self.client.get("/api/events/registration-details/", {"token": "%%%"})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(resp.json()["success"])

    def test_email_required(self):
        resp = self.client.get("/api/events/registration-details/")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["error"], "Email is required")

    def test_unknown_email(self):
        resp = self.client.get("/api/events/registration-details/", {"email": "kabir.singh@du.ac.in"})
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.json()["error"], "Registration not found")
