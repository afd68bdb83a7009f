"""
providers/rfc2136_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
RFC 2136 dynamic updates against an authoritative server, signed with TSIG
or GSS-TSIG.
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
import uuid
from typing import Any

import dns.asyncquery
import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rdtypes.ANY.TKEY
import dns.tsig
import dns.tsigkeyring
import dns.update

from exceptions import DnsProviderError, MissingIdentifierError, OperationTimeoutError
from models import GssTsigCredentials, RecordSpec, Rfc2136Provider
from timeouts import deadline

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 120

# Single DNS exchange (query, update or TKEY round)
_EXCHANGE_TIMEOUT_SECONDS = 10.0

_GSS_TSIG_ALGORITHM = dns.name.from_text("gss-tsig.")


class Rfc2136Client:
    """
    Implements DNSUpdateHandler with RFC 2136 dynamic DNS updates.

    A plain DNS server has no record ids. The handler instead remembers the
    last address it wrote, and get() only reports the published value when
    it matches that address. After a restart the first pass therefore always
    re-creates the record, which the server treats as a no-op if the RR
    already exists.
    """

    def __init__(self, spec: RecordSpec, provider: Rfc2136Provider) -> None:
        self._zone = dns.name.from_text(spec.domain)
        self._name = dns.name.from_text(spec.fqdn)
        self._rdtype = dns.rdatatype.from_text(spec.record_type)
        self._address = provider.address
        self._port = provider.port
        self._use_tcp = provider.use_tcp
        self._gss = provider.gss_tsig

        self._keyring: Any = None
        self._keyname: dns.name.Name | None = None
        self._keyalgorithm: dns.name.Name | str = dns.tsig.default_algorithm
        if provider.tsig is not None:
            self._keyname = dns.name.from_text(provider.tsig.key_name)
            self._keyalgorithm = dns.name.from_text(provider.tsig.algorithm)
            self._keyring = dns.tsigkeyring.from_text(
                {provider.tsig.key_name: (provider.tsig.algorithm, provider.tsig.secret)}
            )

        self._server_ip: str | None = None
        self._last_address = ""

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        query = dns.message.make_query(self._name, self._rdtype)
        query.flags &= ~dns.flags.RD

        logger.debug("Querying %s for the current %s record.", self._address, self._name)
        response = await self._send(query)

        for rrset in response.answer:
            if rrset.name != self._name or rrset.rdtype != self._rdtype:
                continue
            for rdata in rrset:
                if rdata.address == self._last_address:
                    return rdata.address

        logger.debug("No answer matches the last address written by this process.")
        return ""

    async def create(self, address: str) -> None:
        update = await self._new_update()
        update.add(self._name, _DEFAULT_TTL, self._rdtype, address)

        logger.debug("Adding %s %s %s.", self._name, dns.rdatatype.to_text(self._rdtype), address)
        await self._apply(update)
        self._last_address = address

    async def update(self, new_address: str) -> None:
        if not self._last_address:
            raise MissingIdentifierError("last written address is unknown")

        update = await self._new_update()
        update.add(self._name, _DEFAULT_TTL, self._rdtype, new_address)
        update.delete(self._name, self._rdtype, self._last_address)

        logger.debug("Replacing %s with %s for %s.", self._last_address, new_address, self._name)
        await self._apply(update)
        self._last_address = new_address

    async def aclose(self) -> None:
        if self._gss is not None:
            self._keyring = None
            self._keyname = None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _new_update(self) -> dns.update.UpdateMessage:
        if self._gss is not None and self._keyring is None:
            await self._negotiate_gss_context(self._gss)

        if self._keyring is None:
            return dns.update.UpdateMessage(self._zone)
        return dns.update.UpdateMessage(
            self._zone,
            keyring=self._keyring,
            keyname=self._keyname,
            keyalgorithm=self._keyalgorithm,
        )

    async def _apply(self, update: dns.update.UpdateMessage) -> None:
        response = await self._send(update)
        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            raise DnsProviderError(f"DNS update for {self._name} failed: {dns.rcode.to_text(rcode)}")

    async def _resolve_server(self) -> str:
        if self._server_ip is None:
            try:
                ipaddress.ip_address(self._address)
                self._server_ip = self._address
            except ValueError:
                loop = asyncio.get_running_loop()
                try:
                    infos = await loop.getaddrinfo(self._address, self._port)
                except OSError as exc:
                    raise DnsProviderError(f"cannot resolve DNS server {self._address}: {exc}") from exc
                self._server_ip = infos[0][4][0]
        return self._server_ip

    async def _send(self, message: dns.message.Message, *, tcp: bool | None = None) -> dns.message.Message:
        """
        Performs one exchange with the server.

        Raises:
            DnsProviderError: On transport or protocol failures.
            OperationTimeoutError: If the exchange exceeded its deadline.
        """
        where = await self._resolve_server()
        use_tcp = self._use_tcp if tcp is None else tcp
        try:
            async with deadline(_EXCHANGE_TIMEOUT_SECONDS, f"DNS exchange with {self._address}"):
                if use_tcp:
                    return await dns.asyncquery.tcp(
                        message, where, timeout=_EXCHANGE_TIMEOUT_SECONDS, port=self._port
                    )
                return await dns.asyncquery.udp(
                    message, where, timeout=_EXCHANGE_TIMEOUT_SECONDS, port=self._port
                )
        except dns.exception.Timeout as exc:
            raise OperationTimeoutError(f"DNS exchange with {self._address} timed out") from exc
        except (dns.exception.DNSException, OSError) as exc:
            raise DnsProviderError(f"DNS exchange with {self._address} failed: {exc}") from exc

    # ---------------------------------------------------------------------------
    # GSS-TSIG (RFC 3645)
    # ---------------------------------------------------------------------------

    async def _negotiate_gss_context(self, creds: GssTsigCredentials) -> None:
        """
        Establishes a GSS-TSIG security context with the server over TKEY.

        Kerberos credentials are acquired from the username and password for
        the configured realm; no keytab or credential cache is needed.

        Raises:
            DnsProviderError: If gssapi is not installed or negotiation fails.
        """
        try:
            import gssapi
        except ImportError as exc:
            raise DnsProviderError(
                "GSS-TSIG requires the gssapi package (pip install ddns-keeper[gss])"
            ) from exc

        logger.info("Negotiating GSS-TSIG context with %s.", self._address)
        principal = gssapi.Name(
            f"{creds.username}@{creds.domain.upper()}", gssapi.NameType.user
        )
        try:
            acquired = await asyncio.to_thread(
                gssapi.raw.acquire_cred_with_password,
                principal,
                creds.password.encode("utf-8"),
                usage="initiate",
            )
            spn = gssapi.Name(f"DNS@{self._address}", gssapi.NameType.hostbased_service)
            context = gssapi.SecurityContext(name=spn, creds=acquired.creds, usage="initiate")
        except gssapi.exceptions.GSSError as exc:
            raise DnsProviderError(f"Kerberos authentication failed: {exc}") from exc

        keyname = dns.name.from_text(str(uuid.uuid4()))
        keyring = dns.tsig.GSSTSigAdapter({keyname: dns.tsig.Key(keyname, context, _GSS_TSIG_ALGORITHM)})

        try:
            token = await asyncio.to_thread(context.step)
            while not context.complete:
                response = await self._send(self._tkey_query(token, keyring, keyname), tcp=True)
                if response.rcode() != dns.rcode.NOERROR:
                    raise DnsProviderError(
                        f"TKEY negotiation failed: {dns.rcode.to_text(response.rcode())}"
                    )
                if not response.answer:
                    raise DnsProviderError("TKEY negotiation failed: empty answer")
                token = await asyncio.to_thread(context.step, response.answer[0][0].key)
        except gssapi.exceptions.GSSError as exc:
            raise DnsProviderError(f"GSS-TSIG negotiation failed: {exc}") from exc

        self._keyring = keyring
        self._keyname = keyname
        self._keyalgorithm = _GSS_TSIG_ALGORITHM
        logger.info("GSS-TSIG context established.")

    @staticmethod
    def _tkey_query(token: bytes, keyring: Any, keyname: dns.name.Name) -> dns.message.QueryMessage:
        inception = int(time.time())
        tkey = dns.rdtypes.ANY.TKEY.TKEY(
            dns.rdataclass.ANY,
            dns.rdatatype.TKEY,
            _GSS_TSIG_ALGORITHM,
            inception,
            inception,
            3,  # GSS-API negotiation mode
            dns.rcode.NOERROR,
            token,
            b"",
        )
        query = dns.message.make_query(keyname, dns.rdatatype.TKEY, dns.rdataclass.ANY)
        rrset = query.find_rrset(
            query.additional, keyname, dns.rdataclass.ANY, dns.rdatatype.TKEY, create=True
        )
        rrset.add(tkey)
        query.keyring = keyring
        return query
