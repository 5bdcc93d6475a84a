"""Builds the TwiML documents returned to the provider.

Every callback URL is absolute: later steps of a flow are fetched by the
provider on its own, so relative URLs would not resolve.
"""
from typing import Optional
from urllib.parse import urlencode

from twilio.twiml.voice_response import Gather, VoiceResponse

from callflow.core.config import Settings

TWIML_MEDIA_TYPE = "text/xml"

SCREEN_PROMPT = "You have an incoming call. Press 1 to accept."
TEXT_OFFER_PROMPT = (
    "Sorry, no one is available right now. To receive a text message reply instead, press 1. "
    "Otherwise, please leave a message after the beep."
)
VOICEMAIL_PROMPT = "Please leave a message after the beep."
MESSAGE_SENT_PROMPT = "We have sent you a text message. Reply any time and our team will get back to you. Goodbye."
GOODBYE_PROMPT = "Thank you. Goodbye."


class TwimlBuilder:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def url(self, path: str, **params: Optional[str]) -> str:
        query = urlencode({key: value for key, value in params.items() if value})
        target = self.settings.public_url(path)
        return f"{target}?{query}" if query else target

    def _say(self, node, text: str) -> None:
        node.say(text, voice=self.settings.say_voice)

    def empty(self) -> str:
        return str(VoiceResponse())

    def hangup(self) -> str:
        response = VoiceResponse()
        response.hangup()
        return str(response)

    def goodbye(self) -> str:
        response = VoiceResponse()
        self._say(response, GOODBYE_PROMPT)
        response.hangup()
        return str(response)

    def say_and_hangup(self, text: str) -> str:
        response = VoiceResponse()
        self._say(response, text)
        response.hangup()
        return str(response)

    def _append_record(self, response: VoiceResponse, mailbox: str) -> None:
        response.record(
            max_length=self.settings.voicemail_max_length,
            play_beep=True,
            action=self.url("/voice/voicemail-recorded", mailbox=mailbox),
            method="POST",
            recording_status_callback=self.url("/voice/recording", mailbox=mailbox),
            recording_status_callback_method="POST",
            recording_status_callback_event="completed",
            transcribe=self.settings.transcribe_voicemail,
            transcribe_callback=self.url("/voice/transcription", mailbox=mailbox),
        )
        self._say(response, "We did not receive a recording. Goodbye.")
        response.hangup()

    def voicemail(self, mailbox: str, prompt: Optional[str] = VOICEMAIL_PROMPT) -> str:
        """The one voicemail capture instruction, whatever path led here."""
        response = VoiceResponse()
        if prompt:
            self._say(response, prompt)
        self._append_record(response, mailbox)
        return str(response)

    def text_offer_then_voicemail(self, mailbox: str) -> str:
        response = VoiceResponse()
        gather = Gather(
            input="dtmf",
            num_digits=1,
            timeout=self.settings.text_offer_timeout_seconds,
            action=self.url("/voice/connect-operator-text", mailbox=mailbox),
            method="POST",
        )
        if self.settings.apology_audio_url:
            gather.play(self.settings.apology_audio_url)
        else:
            self._say(gather, TEXT_OFFER_PROMPT)
        response.append(gather)
        # Reached only when the gather times out without a digit.
        self._append_record(response, mailbox)
        return str(response)

    def operator_dial(self, caller_id: Optional[str], mailbox: str = "operator") -> str:
        settings = self.settings
        screen_url = self.url("/voice/screen-call")
        response = VoiceResponse()
        dial = response.dial(
            caller_id=caller_id,
            timeout=settings.dial_timeout_seconds,
            action=self.url("/voice/connect-operator-status", mailbox=mailbox),
            method="POST",
        )
        if settings.operator_sip_uri:
            dial.sip(
                settings.operator_sip_uri,
                username=settings.operator_sip_username,
                password=settings.operator_sip_password,
                url=screen_url,
                method="POST",
            )
        dial.client(settings.softphone_identity)
        fallback = settings.operator_fallback_number
        if fallback and fallback not in (settings.operator_sip_uri or ""):
            dial.number(fallback, url=screen_url, method="POST")
        return str(response)

    def screening_prompt(self) -> str:
        response = VoiceResponse()
        gather = Gather(
            input="dtmf",
            num_digits=1,
            timeout=self.settings.screen_timeout_seconds,
            action=self.url("/voice/screen-call-result"),
            method="POST",
        )
        self._say(gather, SCREEN_PROMPT)
        response.append(gather)
        # No digit: end this leg only, the other legs keep ringing.
        response.hangup()
        return str(response)

    def message_sent(self) -> str:
        response = VoiceResponse()
        if self.settings.message_sent_audio_url:
            response.play(self.settings.message_sent_audio_url)
        else:
            self._say(response, MESSAGE_SENT_PROMPT)
        response.hangup()
        return str(response)

    def outbound_dial(self, target: str, caller_id: Optional[str]) -> str:
        response = VoiceResponse()
        dial = response.dial(
            caller_id=caller_id,
            timeout=self.settings.dial_timeout_seconds,
            action=self.url("/voice/outbound-status"),
            method="POST",
        )
        if target.startswith("client:"):
            dial.client(target[len("client:"):])
        else:
            dial.number(target)
        return str(response)
