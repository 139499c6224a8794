from src.application_logger import sender


def test_company_from_quoted_display_name():
    assert sender.parse_company_from_sender_name('"Google" <test@google.com>') == "Google"


def test_bare_address_falls_back_to_domain():
    assert sender.parse_company_from_sender_name("<test@google.com>") is None
    assert sender.parse_company_from_domain("<test@google.com>") == "Google"


def test_invalid_sender():
    assert sender.parse_company_from_sender_name("invalid-sender") is None
    assert sender.parse_company_from_domain("invalid-sender") is None


def test_domain_without_registrable_label():
    assert sender.parse_company_from_domain("<test@.io>") is None


def test_noise_words_and_subdomains_are_dropped():
    frm = "Acme Careers <careers@mail.acme.co.uk>"
    assert sender.parse_company_from_sender_name(frm) == "Acme"
    assert sender.parse_company_from_domain(frm) == "Acme"


def test_hyphenated_domain():
    assert sender.parse_company_from_domain("talent@blue-origin.com") == "Blue Origin"


def test_job_boards_are_never_companies():
    frm = "LinkedIn <jobs-noreply@linkedin.com>"
    assert sender.detect_platform(frm) == "LinkedIn"
    assert sender.parse_company_from_sender_name(frm) is None
    assert sender.parse_company_from_domain(frm) is None


def test_ats_platform_detection():
    assert sender.detect_platform("Workday <noreply@myworkday.com>") == "Workday"
    assert sender.detect_platform("Acme <no-reply@us.greenhouse-mail.io>") == "Greenhouse"
    assert sender.detect_platform("Acme <jobs@acme.com>") == "Other"
    assert sender.parse_company_from_sender_name("Workday <noreply@myworkday.com>") is None


def test_split_sender():
    assert sender.split_sender('"Acme Careers" <Jobs@Acme.com>') == ("Acme Careers", "jobs@acme.com")
    assert sender.split_sender("jobs@acme.com") == ("", "jobs@acme.com")


def test_job_board_display_name_is_not_a_company():
    assert sender.parse_company_from_sender_name("LinkedIn Job Alerts <jobalerts-noreply@linkedin.com>") is None
    assert sender.parse_company_from_sender_name("Glassdoor Jobs <noreply@glassdoor.com>") is None
    assert sender.parse_company_from_sender_name("Indeed Apply <alert@mail.indeed.com>") is None


def test_ats_display_name_still_names_the_employer():
    assert sender.parse_company_from_sender_name("Initech Recruiting <no-reply@us.greenhouse-mail.io>") == "Initech"
