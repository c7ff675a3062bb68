from mediamtx_installer.errors import InstallLocked
from mediamtx_installer.state_store import install_lock, load_state, record_run, run_entry, save_state
from mediamtx_installer.transaction import TransactionHandle, TransactionState

from tests.helpers import InstallerTestCase, make_target


class TestStateFiles(InstallerTestCase):
    def test_missing_file_is_empty(self):
        self.assertEqual(load_state(str(self.tmp / "none.json")), {})

    def test_json_and_yaml(self):
        state = {"installed": {"version": "v1.12.2", "ports": {"rtsp": 18554}}, "runs": []}
        for name in ("state.json", "state.yaml", "state.yml"):
            with self.subTest(name=name):
                path = str(self.tmp / "nested" / name)
                save_state(path, state)
                self.assertEqual(load_state(path), state)

    def test_rejects_non_mapping(self):
        path = self.tmp / "state.json"
        path.write_text("[1, 2]")
        with self.assertRaises(ValueError):
            load_state(str(path))


class TestRunRecords(InstallerTestCase):
    def _handle(self, final):
        handle = TransactionHandle(make_target(self.root))
        handle.record.arch = "amd64"
        if final is TransactionState.ROLLED_BACK:
            handle.transition(TransactionState.FAILED)
        handle.transition(final)
        return handle

    def test_complete_run_updates_installed(self):
        handle = self._handle(TransactionState.COMPLETE)
        state = record_run({}, run_entry(handle, exit_code=0, log_path="/tmp/x.log"), handle)
        self.assertEqual(state["installed"]["version"], "v1.12.2")
        self.assertEqual(state["installed"]["arch"], "amd64")
        self.assertEqual(state["runs"][0]["state"], "Complete")

    def test_failed_run_keeps_previous_install(self):
        handle = self._handle(TransactionState.ROLLED_BACK)
        state = {"installed": {"version": "v1.9.0"}}
        record_run(state, run_entry(handle, exit_code=3, log_path=None), handle)
        self.assertEqual(state["installed"], {"version": "v1.9.0"})
        self.assertEqual(state["runs"][0]["exit_code"], 3)

    def test_history_is_bounded(self):
        handle = self._handle(TransactionState.COMPLETE)
        state = {}
        for i in range(30):
            record_run(state, {"n": i, "finished_at": "now"}, handle)
        self.assertEqual(len(state["runs"]), 20)
        self.assertEqual(state["runs"][0]["n"], 10)


class TestInstallLock(InstallerTestCase):
    def test_second_holder_is_refused(self):
        path = str(self.tmp / "state" / "state.json")
        with install_lock(path) as lock_path:
            self.assertEqual(lock_path.name, "state.lock")
            with self.assertRaises(InstallLocked):
                with install_lock(path):
                    pass
        with install_lock(path):
            pass
