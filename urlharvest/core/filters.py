from __future__ import annotations

from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import urlencode


class Filters(NamedTuple):
    match_status_codes: Tuple[str, ...] = ()
    match_mime_types: Tuple[str, ...] = ()
    filter_status_codes: Tuple[str, ...] = ()
    filter_mime_types: Tuple[str, ...] = ()
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    def get_parameters(self, for_wayback: bool) -> str:
        """
        Build the query-string suffix for an archive CDX request.
        Only the Wayback field spelling is supported.
        Returns '' or a string starting with '&'.
        """
        if not for_wayback:
            raise ValueError("only the Wayback CDX filter syntax is supported")

        params: List[Tuple[str, str]] = []
        for code in self.match_status_codes:
            params.append(('filter', 'statuscode:' + code))
        for m in self.match_mime_types:
            params.append(('filter', 'mimetype:' + m))
        for code in self.filter_status_codes:
            params.append(('filter', '!statuscode:' + code))
        for m in self.filter_mime_types:
            params.append(('filter', '!mimetype:' + m))
        if self.date_from:
            params.append(('from', self.date_from))
        if self.date_to:
            params.append(('to', self.date_to))

        # stable sort keeps the order of repeated keys
        params.sort(key=lambda x: x[0])
        query = urlencode(params)
        return f"&{query}" if query else ''
