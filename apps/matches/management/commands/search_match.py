import asyncio

from django.core.management.base import BaseCommand, CommandError

from apps.matches.conf import TEAM_NAMES
from apps.matches.datatype import EnrichmentResult, SearchState
from apps.matches.services.orchestrator import MatchEnrichmentOrchestrator


class Command(BaseCommand):
    """Runs one match search from the terminal and prints the enriched roster."""

    help = "Looks up a live match by id and prints rank, stats, tags and parties per team."

    def add_arguments(self, parser):
        parser.add_argument("match_id", type=str, help="8-digit match id")
        parser.add_argument("--json", action="store_true", help="Print the final result as JSON")

    def handle(self, *args, **options):
        try:
            final = asyncio.run(self._handle_async(options["match_id"], as_json=options["json"]))
        except KeyboardInterrupt:
            self.stderr.write(self.style.WARNING("Interrupted."))
            return
        if final is None or final.status != "loaded":
            reason = final.reason if final else "no result"
            msg = f"Search failed: {reason}"
            raise CommandError(msg)

    async def _handle_async(self, match_id: str, *, as_json: bool) -> SearchState | None:
        orchestrator = MatchEnrichmentOrchestrator.from_settings()
        final: SearchState | None = None
        try:
            async for state in orchestrator.search(match_id):
                if not as_json:
                    self._write_status(state)
                if state.status in ("loaded", "failed"):
                    final = state
            if final and final.data is not None:
                if as_json:
                    self.stdout.write(final.data.to_json())
                else:
                    self._write_summary(final.data)
                    self._write_budget(orchestrator)
            # let detached work (metadata preload) settle before the loop closes
            await orchestrator.metadata.tasks.drain(timeout=30)
        except TimeoutError:
            self.stderr.write(self.style.WARNING("Metadata preload still running, abandoning it."))
        finally:
            await orchestrator.aclose()
        return final

    # ───────────────────────── output ──────────────────────────
    def _write_status(self, state: SearchState) -> None:
        if state.status == "failed":
            self.stdout.write(self.style.ERROR(f"✗ {state.match_id}: {state.reason}"))
        elif state.status == "loaded":
            source = " (cache)" if state.from_cache else ""
            self.stdout.write(self.style.SUCCESS(f"✓ {state.match_id} loaded{source}"))
        else:
            self.stdout.write(f"… {state.match_id} loading")

    def _write_summary(self, result: EnrichmentResult) -> None:
        data = result.match_data
        for team_name, team in (("amber", data.amber_team), ("sapphire", data.sapphire_team)):
            self.stdout.write(self.style.MIGRATE_HEADING(f"\n{team_name.upper()}"))
            for player in team:
                account_id = player.account_id
                stats = result.match_stats.get(account_id)
                mmr = result.mmr.get(account_id)
                party = result.party_of(account_id)
                tags = ",".join(t.kind for t in result.player_tags.get(account_id, ()))
                rank = f"{mmr.division}.{mmr.division_tier}" if mmr else "-"
                record = (
                    f"{stats.total_matches}m {stats.total_winrate}% (14d {stats.recent_winrate}%) "
                    f"streak {stats.current_streak:+d}"
                    if stats
                    else "no history"
                )
                self.stdout.write(
                    f"  {player.steam_name or account_id:<24} hero {player.hero_id:<4} rank {rank:<5} "
                    f"{record}"
                    f"{'  [' + tags + ']' if tags else ''}"
                    f"{'  ' + party.party_id if party else ''}",
                )
        if result.party_groups:
            self.stdout.write("")
            for group in result.party_groups:
                self.stdout.write(f"{group.party_id} ({TEAM_NAMES[group.team]}): {', '.join(map(str, group.members))}")

    def _write_budget(self, orchestrator: MatchEnrichmentOrchestrator) -> None:
        budget = orchestrator.budget_snapshot()
        self.stdout.write(
            f"\nRequests left: {budget['available_requests']}/{budget['max_requests']}"
            f" (next in {budget['seconds_until_restore']:.0f}s),"
            f" retry queue: {budget['retry_queue_size']}",
        )
