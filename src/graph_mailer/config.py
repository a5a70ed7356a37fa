import os
from dataclasses import dataclass
from typing import List

from .graph.auth import Credential
from .transport.exceptions import IncompleteDsnError
from .transport.factory import Dsn, GraphApiTransportFactory
from .transport.graph_api import GraphApiTransport


@dataclass
class Config:
    # Entra ID App Registration (needs Mail.Send application permission)
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    # Overrides the three settings above when set
    mailer_dsn: str = ""

    timeout: float = 30

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            tenant_id=os.environ.get("AZURE_TENANT_ID", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID", ""),
            client_secret=os.environ.get("AZURE_CLIENT_SECRET", ""),
            mailer_dsn=os.environ.get("MAILER_DSN", ""),
            timeout=float(os.environ.get("GRAPH_TIMEOUT", "30")),
        )

    def validate(self) -> List[str]:
        """Settings that are missing or unusable, named by environment variable."""
        if self.mailer_dsn:
            return self._validate_dsn()
        missing = []
        for name, env in (
            ("tenant_id", "AZURE_TENANT_ID"),
            ("client_id", "AZURE_CLIENT_ID"),
            ("client_secret", "AZURE_CLIENT_SECRET"),
        ):
            if not getattr(self, name):
                missing.append(env)
        return missing

    def _validate_dsn(self) -> List[str]:
        try:
            dsn = Dsn.from_string(self.mailer_dsn)
        except IncompleteDsnError as e:
            return [f"MAILER_DSN ({e})"]
        if not GraphApiTransportFactory().supports(dsn):
            return [f"MAILER_DSN (unsupported scheme \"{dsn.scheme}\")"]
        if not dsn.user or not dsn.password:
            return ["MAILER_DSN (needs a client ID and a client secret)"]
        return []

    def credential(self) -> Credential:
        if self.mailer_dsn:
            dsn = Dsn.from_string(self.mailer_dsn)
            return Credential(dsn.host, dsn.user or "", dsn.password or "")
        return Credential(self.tenant_id, self.client_id, self.client_secret)

    def build_transport(self, **kwargs) -> GraphApiTransport:
        if self.mailer_dsn:
            kwargs.setdefault("timeout", self.timeout)
            return GraphApiTransportFactory(**kwargs).create(self.mailer_dsn)
        missing = self.validate()
        if missing:
            raise ValueError(f"Missing configuration: {', '.join(missing)}")
        return GraphApiTransport(
            self.tenant_id,
            self.client_id,
            self.client_secret,
            timeout=self.timeout,
            **kwargs,
        )
