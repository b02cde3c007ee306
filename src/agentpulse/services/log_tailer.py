"""Incremental reading of growing JSONL transcripts.

The tailer keeps no state of its own: the read offset, the unterminated
remainder and the file identity all live on the agent record, so whoever
owns the record owns the read position.
"""

from __future__ import annotations

import logging
import os

from agentpulse.models.agent import AgentRecord

logger = logging.getLogger(__name__)


class LogTailer:
    """Reads only the bytes appended since the previous call and yields complete lines.

    A line is handed out once it is newline-terminated. Bytes after the last
    newline are carried in ``agent.line_remainder`` until a later write
    completes them. Truncation or replacement of the file (smaller size, or a
    different device/inode pair) resets the position to byte 0 and discards
    the remainder; records already seen in that file are then read again.
    """

    def read_new_lines(self, agent: AgentRecord) -> list[str]:
        """Return the lines completed since the last read, advancing the offset.

        Missing files and stat/read failures count as "no new data".
        """
        path = agent.log_file_path
        if not path:
            return []

        try:
            st = os.stat(path)
        except OSError as e:
            logger.debug("Cannot stat %s for agent %d: %s", path, agent.agent_id, e)
            return []

        identity = (st.st_dev, st.st_ino)
        size = st.st_size

        if agent.file_identity is not None and agent.file_identity != identity:
            logger.warning(
                "Log file %s was replaced (agent %d), reading from the start",
                path,
                agent.agent_id,
            )
            agent.reset_tail()
        elif size < agent.read_offset:
            logger.warning(
                "Log file %s was truncated (offset %d > size %d, agent %d)",
                path,
                agent.read_offset,
                size,
                agent.agent_id,
            )
            agent.reset_tail()

        agent.file_identity = identity
        if size <= agent.read_offset:
            return []

        try:
            with open(path, "rb") as f:
                f.seek(agent.read_offset)
                chunk = f.read(size - agent.read_offset)
        except OSError as e:
            logger.debug("Cannot read %s for agent %d: %s", path, agent.agent_id, e)
            return []

        # The file may have been truncated between stat and read
        if not chunk:
            return []

        data = agent.line_remainder + chunk
        *complete, remainder = data.split(b"\n")
        agent.line_remainder = remainder
        agent.read_offset += len(chunk)

        if complete:
            logger.debug(
                "Read %d new lines from %s (offset %d)",
                len(complete),
                path,
                agent.read_offset,
            )
        return [raw.decode("utf-8", errors="replace") for raw in complete]

    def seek_to_end(self, agent: AgentRecord) -> bool:
        """Position the agent at the current end of its file without replaying history.

        Returns False if the file cannot be stat'ed yet.
        """
        path = agent.log_file_path
        if not path:
            return False
        try:
            st = os.stat(path)
        except OSError:
            return False
        agent.read_offset = st.st_size
        agent.line_remainder = b""
        agent.file_identity = (st.st_dev, st.st_ino)
        logger.info("Agent %d resumes %s at offset %d", agent.agent_id, path, st.st_size)
        return True
