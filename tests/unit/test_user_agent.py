"""Tests for User-Agent classification and IP anonymization."""
import pytest

from affiliate_core.utils.user_agent import anonymize_ip, classify_user_agent, detect_bot

CHROME_DESKTOP = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)
EDGE = CHROME_DESKTOP + " Edg/120.0.2210.91"


class TestBotDetection:

    @pytest.mark.parametrize("ua,bot_type", [
        ("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)", "googlebot"),
        ("facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)", "facebookexternalhit"),
        ("Slackbot-LinkExpanding 1.0 (+https://api.slack.com/robots)", "slackbot"),
        ("Mozilla/5.0 (compatible; SomeCrawler/1.0)", "generic"),
    ])
    def test_known_bots(self, ua, bot_type):
        assert detect_bot(ua) == (True, bot_type)

    def test_browser_is_not_bot(self):
        assert detect_bot(CHROME_DESKTOP) == (False, None)

    def test_missing_user_agent_is_not_bot(self):
        assert detect_bot(None) == (False, None)
        assert detect_bot("") == (False, None)


class TestClassification:

    def test_chrome_on_windows(self):
        info = classify_user_agent(CHROME_DESKTOP)
        assert info.device_type == "desktop"
        assert info.browser == "Chrome"
        assert info.os == "Windows 10"
        assert info.is_bot is False

    def test_iphone(self):
        info = classify_user_agent(SAFARI_IPHONE)
        assert info.device_type == "mobile"
        assert info.browser == "Safari"
        assert info.os == "iOS"

    def test_ipad_is_tablet(self):
        assert classify_user_agent(SAFARI_IPAD).device_type == "tablet"

    def test_edge_before_chrome(self):
        assert classify_user_agent(EDGE).browser == "Edge"

    def test_missing(self):
        info = classify_user_agent(None)
        assert info.device_type == "unknown"
        assert info.browser is None
        assert info.os is None


class TestAnonymizeIp:

    def test_ipv4_zeroes_last_octet(self):
        assert anonymize_ip("203.0.113.42") == "203.0.113.0"

    def test_ipv6_keeps_four_groups(self):
        assert anonymize_ip("2001:0db8:85a3:0000:0000:8a2e:0370:7334") == "2001:db8:85a3:0::"

    def test_invalid_is_returned_unchanged(self):
        assert anonymize_ip("not-an-ip") == "not-an-ip"

    def test_none(self):
        assert anonymize_ip(None) is None
