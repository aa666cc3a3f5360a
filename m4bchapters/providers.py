import logging
from typing import List, Optional, Sequence

from m4bchapters.boxes import read_movie_duration
from m4bchapters.parser import PlatformChapterGroup, PlatformChapterProvider
from m4bchapters.utils import Source, open_stream, source_name


class ContainerMetadataProvider(PlatformChapterProvider):
    """
    Provider for hosts without a native media framework.

    It knows no natively tagged chapters and takes the duration from the
    movie header box.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def chapter_groups(self, source: Source, locales: Sequence[str]) -> List[PlatformChapterGroup]:
        return []

    def duration(self, source: Source) -> Optional[float]:
        try:
            duration = read_movie_duration(open_stream(source))
        except OSError as e:
            self.logger.warning(f"Could not read duration of {source_name(source)}: {e}")
            return None

        if duration is None:
            self.logger.debug(f"No movie header duration in {source_name(source)}")
        return duration
