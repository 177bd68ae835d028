import json
import os
import unittest

from sunobridge import config as _config_module
from sunobridge import constants
from sunobridge.config import get_browser_settings, get_config, get_timeouts, parse_bool, save_config

from tests._bridge_test_utils import BaseBridgeTest


class TestConfig(BaseBridgeTest):
    def test_defaults_are_applied_to_partial_file(self) -> None:
        self.config_path.write_text(json.dumps({"timeouts": {"popup_close": 7}}))

        config = get_config()

        self.assertEqual(config["browser"], "chromium")
        self.assertTrue(config["browser_headless"])
        self.assertEqual(config["captcha_test_prompt"], "Lorem ipsum")
        self.assertEqual(config["timeouts"]["popup_close"], 7)
        self.assertEqual(config["timeouts"]["page_api_response"], 30)

    def test_missing_or_corrupt_file_uses_defaults(self) -> None:
        self.config_path.write_text("{not json")
        self.assertEqual(get_config()["session_cache_max_entries"], constants.DEFAULT_SESSION_CACHE_MAX_ENTRIES)

        _config_module.set_config_file(str(self.config_path) + ".missing")
        self.assertEqual(get_config()["suno_cookie"], "")

    def test_environment_overrides_file(self) -> None:
        self.write_config(browser="chromium", twocaptcha_key="file-key")
        os.environ["BROWSER"] = "firefox"
        os.environ["TWOCAPTCHA_KEY"] = "env-key"
        os.environ["TIMEOUT_CAPTCHA_SCREENSHOT"] = "9.5"
        os.environ["TIMEOUT_POPUP_CLOSE"] = "soon"

        config = get_config()

        self.assertEqual(config["browser"], "firefox")
        self.assertEqual(config["twocaptcha_key"], "env-key")
        self.assertEqual(config["timeouts"]["captcha_screenshot"], 9.5)
        self.assertEqual(config["timeouts"]["popup_close"], 0)

    def test_save_config_round_trips(self) -> None:
        config = get_config()
        config["suno_cookie"] = "__client=saved"

        save_config(config)

        self.assertEqual(json.loads(self.config_path.read_text())["suno_cookie"], "__client=saved")
        self.assertFalse(os.path.exists(str(self.config_path) + ".tmp"))

    def test_parse_bool(self) -> None:
        for value in ("1", "true", "YES", "on", True):
            with self.subTest(value=value):
                self.assertTrue(parse_bool(value))
        for value in ("0", "false", "No", "off", False):
            with self.subTest(value=value):
                self.assertFalse(parse_bool(value, default=True))
        self.assertTrue(parse_bool("maybe", default=True))
        self.assertFalse(parse_bool(None))

    def test_timeouts_are_clamped(self) -> None:
        timeouts = get_timeouts({"timeouts": {"popup_close": -3, "audio_poll_delay_min": 8, "audio_poll_delay_max": 2, "page_navigation": "x"}})

        self.assertEqual(timeouts["popup_close"], 0.0)
        self.assertEqual(timeouts["audio_poll_delay_max"], 8.0)
        self.assertEqual(timeouts["page_navigation"], 0.0)
        self.assertEqual(set(timeouts), set(constants.DEFAULT_TIMEOUTS))

    def test_browser_settings_normalization(self) -> None:
        settings = get_browser_settings({
            "browser": "Opera",
            "browser_headless": "false",
            "browser_disable_gpu": "yes",
            "browser_locale": "",
            "user_agent": "",
        })

        self.assertEqual(settings["engine"], "chromium")
        self.assertFalse(settings["headless"])
        self.assertTrue(settings["disable_gpu"])
        self.assertIsNone(settings["locale"])
        self.assertEqual(settings["user_agent"], constants.DEFAULT_USER_AGENT)
        self.assertEqual(get_browser_settings({"browser": " FIREFOX "})["engine"], "firefox")


if __name__ == "__main__":
    unittest.main()
