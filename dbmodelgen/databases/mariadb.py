"""MariaDB dialect adapter. Same catalog as MySQL, different default reporting."""

from typing import Mapping, Optional

from .mysql import MysqlAdapter


class MariadbAdapter(MysqlAdapter):
    """MariaDB dialect adapter."""

    dialect = "mariadb"

    def normalize_default(self, row: Mapping, host_type: str) -> Optional[str]:
        """MariaDB quotes string literals itself and reports a missing default as the text NULL."""
        default = row.get("column_default")
        if default is None:
            return None
        default = str(default)
        if default.upper() == "NULL":
            return None
        return default
