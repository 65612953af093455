import os
import stat

from paramiko.message import Message
from paramiko.sftp_attr import SFTPAttributes as WireAttributes

from rootsftp.sftp_attr import SFTPAttributes


class TestSFTPAttributes:
    def test_from_stat_keeps_milliseconds(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"12345")
        os.utime(path, ns=(1_600_000_000_123_456_789, 1_600_000_001_987_000_000))
        attr = SFTPAttributes.from_stat(os.stat(path), "f.bin")
        assert attr.as_dict() == {
            "mode": os.stat(path).st_mode,
            "uid": os.stat(path).st_uid,
            "gid": os.stat(path).st_gid,
            "size": 5,
            "atime": 1_600_000_000_123,
            "mtime": 1_600_000_001_987,
        }
        assert attr.st_atime == 1_600_000_000
        assert attr.st_mtime == 1_600_000_001

    def test_pack_sends_whole_seconds(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"abc")
        os.utime(path, ns=(1_700_000_000_500_000_000, 1_700_000_000_900_000_000))
        attr = SFTPAttributes.from_stat(os.stat(path), "f.bin")
        msg = Message()
        attr._pack(msg)
        wire = WireAttributes._from_msg(Message(msg.asbytes()))
        assert wire.st_size == 3
        assert wire.st_mode == attr.st_mode
        assert wire.st_atime == 1_700_000_000
        assert wire.st_mtime == 1_700_000_000

    def test_longname(self, tmp_path):
        (tmp_path / "d").mkdir()
        (tmp_path / "f").write_bytes(b"")
        folder = SFTPAttributes.from_stat(os.stat(tmp_path / "d"), "d")
        regular = SFTPAttributes.from_stat(os.stat(tmp_path / "f"), "f")
        assert folder.is_dir()
        assert not regular.is_dir()
        assert str(folder) == "drwxrwxrwx  1 user group    11 Sep 27 12:00 d"
        assert str(regular) == "-rwxrwxrwx  1 user group    11 Sep 27 12:00 f"

    def test_empty(self):
        attr = SFTPAttributes()
        assert attr.st_atime is None
        assert not attr.is_dir()
        assert str(attr).endswith(" ?")
        assert repr(attr) == "<SFTPAttributes: [ ]>"
        msg = Message()
        attr._pack(msg)
        assert Message(msg.asbytes()).get_int() == 0

    def test_repr_mentions_fields(self, tmp_path):
        attr = SFTPAttributes.from_stat(os.stat(tmp_path))
        assert "mode=" + oct(attr.st_mode) in repr(attr)
        assert stat.S_ISDIR(attr.st_mode)
