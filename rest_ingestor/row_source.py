from rest_ingestor.parameters import ParameterBuilder


class RowSourceIterator:
    """
    Drives request parameters from the rows of an auxiliary query. Each row's
    columns become request parameters; rows whose parameters fail their
    directives are skipped. When present, this replaces next/prev links in the
    response entirely.
    """

    def __init__(self, cursor, builder: ParameterBuilder, log):
        self.cursor = cursor
        self.builder = builder
        self.log = log
        self.rows_read = 0
        self.rows_skipped = 0
        self._exhausted = False

    @property
    def has_next(self) -> bool:
        return not self._exhausted

    def advance(self) -> bool:
        while not self._exhausted:
            row = self.cursor.fetchone()
            if row is None:
                self._exhausted = True
                break
            self.rows_read += 1
            self.builder.set_parameters(dict(row))
            if self.builder.build() is not None:
                return True
            self.rows_skipped += 1
            self.log.debug(
                f"[row_source] skipping source row {self.rows_read}"
            )
        return False
