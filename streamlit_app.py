import asyncio
import logging
import os
import streamlit as st

from auth import auth_from_settings
from client import store_from_settings
from config import configure_logging, load_settings
from db import ProfileRepository
from errors import ProfileFetchFailed
from goal_service import GoalForm, GoalOutcome
from notifications import Notification, Notifier, Severity
from training_service import TrainingSession

logger = logging.getLogger(__name__)


class ToastNotifier(Notifier):
    """Queue notifications in the session and show them as toasts.

    Queued toasts survive ``st.rerun`` and are shown by ``flush``.
    """

    ICONS = {Severity.DEFAULT: "✅", Severity.DESTRUCTIVE: "⚠️"}

    def show(
        self, title: str, description: str, severity: Severity = Severity.DEFAULT
    ) -> None:
        pending = st.session_state.setdefault("pending_toasts", [])
        pending.append(Notification(title, description, Severity(severity)))

    def flush(self) -> None:
        pending = st.session_state.get("pending_toasts", [])
        while pending:
            note = pending.pop(0)
            st.toast(f"**{note.title}**\n\n{note.description}", icon=self.ICONS[note.severity])


class GoalTrackerApp:
    """Streamlit application for goals and daily training."""

    def __init__(self, yaml_path: str = "settings.yaml") -> None:
        self.settings = load_settings(yaml_path)
        configure_logging(self.settings.log_level)
        st.set_page_config(page_title="GoalQuest", page_icon="🎯")
        self.notifier = ToastNotifier()
        self.store = store_from_settings(self.settings)
        if (
            os.environ.get("TEST_MODE") == "1"
            and not self.settings.uses_remote_backend
            and not self.settings.user_id
        ):
            self.settings.user_id = self._demo_user()
        self.auth = auth_from_settings(self.settings)
        self._state_init()

    def _demo_user(self) -> str:
        profiles = ProfileRepository(self.settings.db_path)
        return profiles.find_by_username("demo") or profiles.create("demo")

    def _state_init(self) -> None:
        if "user_id" not in st.session_state:
            st.session_state.user_id = self.auth.current_user_id()
        user_id = st.session_state.user_id
        if "goal_form" not in st.session_state:
            st.session_state.goal_form = GoalForm(
                self.store, self.notifier, user_id, on_close=self._close_goal_form
            )
        if "training" not in st.session_state:
            st.session_state.training = TrainingSession(self.store, self.notifier, user_id)
        st.session_state.setdefault("show_goal_form", False)
        st.session_state.setdefault("form_version", 0)

    @staticmethod
    def _close_goal_form() -> None:
        st.session_state.show_goal_form = False

    @staticmethod
    def _bump_form() -> None:
        st.session_state.form_version += 1

    def run(self) -> None:
        self.notifier.flush()
        st.title("GoalQuest")
        if not st.session_state.user_id:
            st.info("Sign in to save goals and track your training.")
        goals_tab, training_tab = st.tabs(["Goals", "Training"])
        with goals_tab:
            self._goals_tab()
        with training_tab:
            self._training_tab()
        self.notifier.flush()

    def _list_editor(
        self,
        label: str,
        items: list[str],
        update,
        remove,
        add,
        prefix: str,
    ) -> None:
        version = st.session_state.form_version
        st.markdown(f"**{label}**")
        for idx, item in enumerate(items):
            cols = st.columns([6, 1])
            value = cols[0].text_input(
                f"{label} {idx + 1}",
                value=item,
                key=f"{prefix}_{version}_{idx}",
                label_visibility="collapsed",
            )
            if value != item:
                update(idx, value)
            if cols[1].button("✕", key=f"{prefix}_del_{version}_{idx}"):
                remove(idx)
                self._bump_form()
                st.rerun()
        if st.button(f"Add {label[:-1].lower()}", key=f"{prefix}_add"):
            add()
            st.rerun()

    def _goals_tab(self) -> None:
        st.header("Goals")
        form: GoalForm = st.session_state.goal_form
        if not st.session_state.show_goal_form:
            if st.button("New Goal", key="goal_new"):
                st.session_state.show_goal_form = True
                st.rerun()
            return

        version = st.session_state.form_version
        st.subheader("Set a new goal")
        goal_text = st.text_input(
            "What's your goal?",
            value=form.goal_text,
            placeholder="Enter your goal here",
            key=f"goal_text_{version}",
        )
        end_date = st.date_input(
            "Target completion date",
            value=form.end_date or None,
            key=f"goal_end_{version}",
        )
        form.goal_text = goal_text
        form.end_date = end_date or ""

        self._list_editor(
            "Daily Tasks",
            form.daily_tasks,
            form.update_daily_task,
            form.remove_daily_task,
            form.add_daily_task,
            "task",
        )
        self._list_editor(
            "Resource Links",
            form.resource_links,
            form.update_resource_link,
            form.remove_resource_link,
            form.add_resource_link,
            "link",
        )

        cols = st.columns(2)
        if cols[0].button("Set Goal", key="goal_submit", type="primary"):
            outcome = asyncio.run(form.submit())
            if outcome is GoalOutcome.CREATED:
                self._bump_form()
                st.rerun()
        if cols[1].button("Cancel", key="goal_cancel"):
            self._close_goal_form()
            st.rerun()

    def _training_tab(self) -> None:
        session: TrainingSession = st.session_state.training
        st.header("Today's Training")
        if session.user_id and session.profile is None:
            try:
                asyncio.run(session.load_profile())
            except ProfileFetchFailed as e:
                logger.error("Error loading profile: %s", e)
                st.error("Could not load your profile.")
        if session.profile is not None:
            st.caption(
                f"Level {session.profile.display_level} • "
                f"{session.profile.display_experience} XP"
            )

        st.progress(int(session.daily_progress), text="Daily Training Progress")
        st.progress(int(session.overall_progress), text="Overall Fitness Goals")

        for ex in session.exercises.values():
            with st.container(border=True):
                cols = st.columns([4, 1])
                with cols[0]:
                    st.subheader(ex.title)
                    st.write(ex.description)
                    st.caption(f"Duration: {ex.duration}")
                    st.markdown(f":green[+{ex.experience_points} XP]")
                active = session.is_active(ex.id)
                if cols[1].button(
                    "Complete" if active else "Start",
                    key=f"train_{ex.id}",
                    type="secondary" if active else "primary",
                ):
                    asyncio.run(session.toggle(ex.id))
                    st.rerun()
                st.markdown("**Instructions:**")
                st.caption(ex.instructions)


if __name__ == "__main__":
    GoalTrackerApp(os.environ.get("YAML_PATH", "settings.yaml")).run()
