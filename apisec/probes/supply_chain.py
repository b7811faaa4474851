import logging

from apisec.crawler.forms import extract_external_resources
from apisec.probes.base import BaseProbe, ProbeContext
from apisec.probes.headers import fetch_root

log = logging.getLogger(__name__)


class SubresourceIntegrityProbe(BaseProbe):
    name = "subresource-integrity"
    title = "Supply chain: subresource integrity"
    category = "API10_LOGGING"

    async def run(self, ctx: ProbeContext) -> None:
        resp = await fetch_root(ctx)
        if resp is None or not resp.is_html:
            ctx.reporter.report_skip("GET / did not return an HTML page")
            return

        resources = extract_external_resources(resp.text, resp.url or ctx.base_url + "/")
        if not resources:
            ctx.reporter.report_pass("No third-party scripts or stylesheets are loaded", self.category)
            return

        unpinned = [r["url"] for r in resources if not r["integrity"]]
        if unpinned:
            ctx.reporter.report_warning(
                f"{len(unpinned)} of {len(resources)} external resources load without an integrity hash: "
                + ", ".join(unpinned),
                ["Add integrity and crossorigin attributes to third-party <script> and <link> tags",
                 "Self-host critical dependencies"],
                self.category,
            )
        else:
            ctx.reporter.report_pass(f"All {len(resources)} external resources carry integrity hashes", self.category)
