from livecoach.transcript.models import AggregatedSegment, Source
from livecoach.transcript.questions import ROLE_INTERVIEWEE, ROLE_INTERVIEWER, QuestionDetector


def _segment(source: Source, text: str, speaker=None, is_final=True) -> AggregatedSegment:
    return AggregatedSegment(source=source, text=text, is_final=is_final, timestamp=1000.0, speaker=speaker)


def test_question_text_by_terminator_or_lead_word():
    detector = QuestionDetector()

    assert detector.is_question_text("You joined in 2019?")
    assert detector.is_question_text("How would you design a rate limiter")
    assert detector.is_question_text("tell me about your last role.")
    assert not detector.is_question_text("whatever works for you.")
    assert not detector.is_question_text("I think that covers it.")
    assert not detector.is_question_text("   ")


def test_custom_lead_words_are_data():
    detector = QuestionDetector(lead_words=("walk",), terminators=())

    assert detector.is_question_text("Walk me through the design")
    assert not detector.is_question_text("Why not?")


def test_role_of_prefers_explicit_labels_over_source():
    detector = QuestionDetector(interviewer_source=Source.SYSTEM, interviewer_speaker_slot="Speaker 0")

    assert detector.role_of(Source.MICROPHONE, "Interviewer") == ROLE_INTERVIEWER
    assert detector.role_of(Source.SYSTEM, "Interviewee") == ROLE_INTERVIEWEE
    assert detector.role_of(Source.MICROPHONE, "Speaker 0") == ROLE_INTERVIEWEE
    assert detector.role_of(Source.SYSTEM, "Speaker 0") == ROLE_INTERVIEWER
    assert detector.role_of(Source.SYSTEM, None) == ROLE_INTERVIEWER
    assert detector.role_of(Source.MICROPHONE, "Speaker 1") == ROLE_INTERVIEWEE


def test_interviewer_question_needs_final_interviewer_and_question():
    detector = QuestionDetector(interviewer_source=Source.SYSTEM, interviewer_speaker_slot=None)

    assert detector.is_interviewer_question(_segment(Source.SYSTEM, "Why this company?"))
    assert detector.is_interviewer_question(_segment(Source.MICROPHONE, "What now?", speaker="interviewer"))
    assert not detector.is_interviewer_question(_segment(Source.MICROPHONE, "What do you mean?"))
    assert not detector.is_interviewer_question(_segment(Source.SYSTEM, "Why this company?", is_final=False))
    assert not detector.is_interviewer_question(_segment(Source.SYSTEM, "Great, thanks."))
