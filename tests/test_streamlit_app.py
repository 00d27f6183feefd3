import os
import sys
import json
import sqlite3
import datetime
import unittest

from streamlit.testing.v1 import AppTest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import ENV_OVERRIDES

APP_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "streamlit_app.py")


class StreamlitAppTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = os.path.abspath("test_gui.db")
        self.yaml_path = os.path.abspath("test_gui_settings.yaml")
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.saved_env = {k: os.environ.pop(k) for k in ENV_OVERRIDES if k in os.environ}
        os.environ["DB_PATH"] = self.db_path
        os.environ["YAML_PATH"] = self.yaml_path
        os.environ["TEST_MODE"] = "1"
        self.at = AppTest.from_file(APP_PATH, default_timeout=20)
        self.at.run(timeout=20)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        for key in ("DB_PATH", "YAML_PATH", "TEST_MODE"):
            os.environ.pop(key, None)
        os.environ.update(self.saved_env)

    def test_renders_tabs(self) -> None:
        self.assertFalse(self.at.exception)
        self.assertEqual(self.at.title[0].value, "GoalQuest")
        self.assertEqual([t.label for t in self.at.tabs], ["Goals", "Training"])
        self.assertEqual(self.at.button(key="train_run").label, "Start")

    def test_start_and_complete_exercise(self) -> None:
        self.at.button(key="train_run").click().run()
        self.assertEqual(self.at.session_state["training"].active_task, "run")
        self.assertEqual(self.at.button(key="train_run").label, "Complete")
        self.at.button(key="train_run").click().run()
        session = self.at.session_state["training"]
        self.assertIsNone(session.active_task)
        self.assertEqual(session.daily_progress, 50)
        self.assertEqual(session.profile.experience_points, 100)
        self.assertFalse(self.at.exception)

    def test_create_goal(self) -> None:
        self.at.button(key="goal_new").click().run()
        self.at.text_input(key="goal_text_0").input("Run 5k").run()
        self.at.date_input(key="goal_end_0").set_value(datetime.date(2025, 6, 1)).run()
        self.at.text_input(key="task_0_0").input("Stretch").run()
        self.at.button(key="goal_submit").click().run()
        self.assertFalse(self.at.exception)
        conn = sqlite3.connect(self.db_path)
        rows = conn.execute("SELECT goal_text, end_date, daily_tasks FROM goals;").fetchall()
        conn.close()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0][0], "Run 5k")
        self.assertEqual(rows[0][1], "2025-06-01T00:00:00.000Z")
        self.assertEqual(json.loads(rows[0][2]), ["Stretch"])
        self.assertFalse(self.at.session_state["show_goal_form"])


if __name__ == "__main__":
    unittest.main()
