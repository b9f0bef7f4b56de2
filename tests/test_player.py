import importlib, sys, threading, types
from unittest import TestCase
from unittest.mock import patch, MagicMock

# --- prepare minimal vlc stub before importing player ---
vlc_stub = types.ModuleType('vlc')
vlc_stub.Instance = MagicMock()
vlc_stub.EventType = types.SimpleNamespace(MediaListPlayerPlayed=object())

with patch.dict(sys.modules, {'vlc': vlc_stub}):
    player = importlib.import_module('player')
    playlist = importlib.import_module('playlist')


def _item(path, checked=True):
    return playlist.PlaylistItem(path=path, checked=checked)


class VLCStubMixin:
    def setUp(self):
        vlc_stub.Instance = MagicMock()
        self.instance = vlc_stub.Instance.return_value
        self.mlist    = self.instance.media_list_new.return_value
        self.mlist.add_media.return_value = 0
        self.lp       = self.instance.media_list_player_new.return_value
        self.events   = self.lp.event_manager.return_value
        # VLC reports the list as played as soon as the listener is attached
        self.events.event_attach.side_effect = lambda ev, cb: cb(None)
        self.p = player.VLCPlaylistPlayer()
        self.p.POLL = 0.01

    def assertReleasedOnce(self):
        self.lp.stop.assert_called_once()
        self.lp.release.assert_called_once()
        self.mlist.release.assert_called_once()
        self.instance.release.assert_called_once()


class OutputModeTests(TestCase):
    def test_invalid_mode(self):
        with self.assertRaises(ValueError):
            player.VLCPlaylistPlayer(aout='bogus')

    def test_headless_opts(self):
        self.assertEqual(player.VLCPlaylistPlayer().instance_opts(),
                         ['--no-video', '--quiet'])

    def test_dummy_output(self):
        opts = player.VLCPlaylistPlayer(aout='dummy').instance_opts()
        self.assertIn('--aout=dummy', opts)
        self.assertIn('--no-video', opts)


class PlayTests(VLCStubMixin, TestCase):
    def test_only_checked_items_in_order(self):
        items = [_item('/m/a.mp3'), _item('/m/b.mp3', False),
                 _item('/m/c.mp3'), _item('/m/d.mp3', False)]
        self.assertEqual(self.p.play(items), 2)
        paths = [c.args[0] for c in self.instance.media_new_path.call_args_list]
        self.assertEqual(paths, ['/m/a.mp3', '/m/c.mp3'])
        self.assertEqual(self.mlist.add_media.call_count, 2)
        vlc_stub.Instance.assert_called_once_with(['--no-video', '--quiet'])
        self.lp.set_media_list.assert_called_once_with(self.mlist)
        self.lp.play.assert_called_once()
        self.assertReleasedOnce()
        self.events.event_detach.assert_called_once()

    def test_media_added_under_list_lock(self):
        calls = []
        self.mlist.lock.side_effect = lambda: calls.append('lock')
        self.mlist.unlock.side_effect = lambda: calls.append('unlock')
        self.mlist.add_media.side_effect = lambda m: calls.append('add') or 0
        self.p.play([_item('/m/a.mp3'), _item('/m/b.mp3')])
        self.assertEqual(calls, ['lock', 'add', 'add', 'unlock'])

    def test_list_unlocked_after_failed_add(self):
        self.mlist.add_media.return_value = -1
        with self.assertRaises(player.PlaybackError):
            self.p.play([_item('/m/a.mp3')])
        self.mlist.lock.assert_called_once()
        self.mlist.unlock.assert_called_once()
        self.assertReleasedOnce()

    def test_nothing_checked(self):
        with self.assertRaises(player.PlaybackError) as cm:
            self.p.play([_item('/m/a.mp3', False)])
        self.assertEqual(cm.exception.step, 'build')
        vlc_stub.Instance.assert_not_called()

    def test_init_failure(self):
        vlc_stub.Instance.side_effect = NameError('no libvlc')
        with self.assertRaises(player.PlaybackError) as cm:
            self.p.play([_item('/m/a.mp3')])
        self.assertEqual(cm.exception.step, 'init')

    def test_build_failure_names_entry(self):
        self.mlist.add_media.side_effect = [0, -1]
        with self.assertRaises(player.PlaybackError) as cm:
            self.p.play([_item('/m/a.mp3'), _item('/m/broken.mp3')])
        self.assertEqual(cm.exception.step, 'build')
        self.assertIn('/m/broken.mp3', str(cm.exception))
        self.lp.play.assert_not_called()
        self.assertReleasedOnce()

    def test_attach_failure(self):
        self.lp.set_media_list.side_effect = RuntimeError('boom')
        with self.assertRaises(player.PlaybackError) as cm:
            self.p.play([_item('/m/a.mp3')])
        self.assertEqual(cm.exception.step, 'attach')
        self.assertIsInstance(cm.exception.cause, RuntimeError)
        self.events.event_detach.assert_not_called()
        self.assertReleasedOnce()

    def test_play_failure(self):
        self.lp.play.side_effect = RuntimeError('no audio device')
        with self.assertRaises(player.PlaybackError) as cm:
            self.p.play([_item('/m/a.mp3')])
        self.assertEqual(cm.exception.step, 'play')
        self.events.event_detach.assert_called_once()
        self.assertReleasedOnce()

    def test_timeout(self):
        self.events.event_attach.side_effect = None      # VLC never finishes
        with self.assertRaises(player.PlaybackTimeout) as cm:
            self.p.play([_item('/m/a.mp3')], timeout=0.05)
        self.assertEqual(cm.exception.step, 'wait')
        self.assertReleasedOnce()

    def test_cancel(self):
        self.events.event_attach.side_effect = None
        cancel = threading.Event()
        cancel.set()
        self.assertEqual(self.p.play([_item('/m/a.mp3')], cancel=cancel), 1)
        self.assertReleasedOnce()
