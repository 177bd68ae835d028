import asyncio
import base64
import unittest
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import Error as PlaywrightError

from sunobridge.captcha import ChallengeKind, ChallengeSolver, CycleOutcome, CycleState, classify_challenge
from sunobridge.errors import CaptchaServiceError, ChallengeSolveFailed
from sunobridge.twocaptcha import CaptchaSolution

from tests._bridge_test_utils import BaseBridgeTest, FakeLocator, FakePage, closed_error, fast_timeouts


class TestClassifyChallenge(unittest.TestCase):
    def test_drag_keyword_is_case_insensitive(self) -> None:
        self.assertIs(classify_challenge("Please DRAG the piece into place"), ChallengeKind.DRAG)
        self.assertIs(classify_challenge("Click on all images with a boat"), ChallengeKind.CLICK)
        self.assertIs(classify_challenge(""), ChallengeKind.CLICK)


class TestChallengeSolver(BaseBridgeTest):
    def _solver(self, page: FakePage, client=None, **kwargs) -> ChallengeSolver:
        self.create_button = FakeLocator()
        self.abort_event = asyncio.Event()
        client = client or MagicMock(coordinates=AsyncMock(), report_bad=AsyncMock())
        return ChallengeSolver(
            page,
            self.create_button,
            client,
            timeouts=fast_timeouts(),
            abort_event=self.abort_event,
            locale="en",
            **kwargs,
        )

    async def test_click_challenge_clicks_each_point_then_submits(self) -> None:
        page = FakePage(prompt_text="Click each bird")
        solver = self._solver(page)
        solver.solver_client.coordinates.return_value = CaptchaSolution("1", [(10, 20), (30, 40)])

        outcome = await solver.run_cycle()

        self.assertIs(outcome, CycleOutcome.SUBMITTED)
        self.assertEqual(solver.state, CycleState.SUBMITTING)
        self.assertEqual(
            page.challenge.clicks,
            [{"force": True, "position": {"x": 10, "y": 20}}, {"force": True, "position": {"x": 30, "y": 40}}],
        )
        self.assertEqual(len(page.submit.clicks), 1)
        args, kwargs = solver.solver_client.coordinates.await_args
        self.assertEqual(args[0], base64.b64encode(b"png-bytes").decode("ascii"))
        self.assertEqual(kwargs, {"lang": "en"})

    async def test_drag_challenge_moves_relative_to_challenge_box(self) -> None:
        page = FakePage(prompt_text="Drag the piece", box={"x": 100, "y": 200, "width": 1, "height": 1})
        solver = self._solver(page, drag_image_b64="aW5z")
        solver.solver_client.coordinates.return_value = CaptchaSolution("1", [(1, 2), (3, 4)])

        outcome = await solver.run_cycle()

        self.assertIs(outcome, CycleOutcome.SUBMITTED)
        self.assertEqual(
            page.mouse.events,
            [("move", 101, 202, 1), ("down",), ("move", 103, 204, 30), ("up",)],
        )
        kwargs = solver.solver_client.coordinates.await_args.kwargs
        self.assertEqual(kwargs["image_instructions_b64"], "aW5z")
        self.assertIn("CLICK on the shapes", kwargs["text_instructions"])

    async def test_odd_drag_solution_is_reported_and_not_dragged(self) -> None:
        page = FakePage(prompt_text="Drag the piece")
        solver = self._solver(page)
        solver.solver_client.coordinates.return_value = CaptchaSolution("bad-1", [(1, 2), (3, 4), (5, 6)])

        outcome = await solver.run_cycle()

        self.assertIs(outcome, CycleOutcome.BAD_SOLUTION)
        solver.solver_client.report_bad.assert_awaited_once_with("bad-1")
        self.assertEqual(page.mouse.events, [])
        self.assertEqual(page.submit.clicks, [])

    async def test_missing_bounding_box_is_an_error(self) -> None:
        page = FakePage(prompt_text="Drag the piece")
        page.challenge.box = None
        solver = self._solver(page)
        solver.solver_client.coordinates.return_value = CaptchaSolution("1", [(1, 2), (3, 4)])

        with self.assertRaises(Exception) as ctx:
            await solver.run_cycle()
        self.assertIn("bounding box", str(ctx.exception))

    async def test_three_failures_raise_challenge_solve_failed(self) -> None:
        page = FakePage()
        solver = self._solver(page)
        last = CaptchaServiceError("ERROR_CAPTCHA_UNSOLVABLE")
        solver.solver_client.coordinates.side_effect = [CaptchaServiceError("a"), CaptchaServiceError("b"), last]

        with self.assertRaises(ChallengeSolveFailed) as ctx:
            await solver.solve_with_retry(ChallengeKind.CLICK)

        self.assertIs(ctx.exception.__cause__, last)
        self.assertEqual(solver.solver_client.coordinates.await_count, 3)

    async def test_retry_recovers_after_transient_failure(self) -> None:
        page = FakePage()
        solver = self._solver(page)
        solver.solver_client.coordinates.side_effect = [CaptchaServiceError("a"), CaptchaSolution("2", [(1, 1)])]

        solution = await solver.solve_with_retry(ChallengeKind.CLICK)

        self.assertEqual(solution.id, "2")

    async def test_screenshot_failure_counts_as_attempt(self) -> None:
        page = FakePage()
        page.challenge.screenshot_error = PlaywrightError("Timeout 5000ms exceeded")
        solver = self._solver(page)

        with self.assertRaises(ChallengeSolveFailed):
            await solver.solve_with_retry(ChallengeKind.CLICK)
        solver.solver_client.coordinates.assert_not_awaited()

    async def test_viewport_submit_failure_reclicks_create(self) -> None:
        page = FakePage()
        page.submit.click_error = PlaywrightError("Element is outside of the viewport")
        solver = self._solver(page)

        await solver.submit()

        self.assertEqual(len(self.create_button.clicks), 1)

    async def test_other_submit_failure_propagates(self) -> None:
        page = FakePage()
        page.submit.click_error = PlaywrightError("Element is not attached to the DOM")
        solver = self._solver(page)

        with self.assertRaises(PlaywrightError):
            await solver.submit()
        self.assertEqual(self.create_button.clicks, [])

    async def test_run_skips_image_wait_only_after_bad_solution(self) -> None:
        page = FakePage()
        solver = self._solver(page)
        seen: list[bool] = []
        outcomes = [CycleOutcome.SUBMITTED, CycleOutcome.BAD_SOLUTION, CycleOutcome.SUBMITTED]

        async def fake_cycle(wait_for_images: bool = True):
            seen.append(wait_for_images)
            outcome = outcomes[len(seen) - 1]
            if len(seen) == len(outcomes):
                self.abort_event.set()
            return outcome

        solver.run_cycle = fake_cycle
        await solver.run()

        self.assertEqual(seen, [True, True, False])
        self.assertEqual(solver.cycles, 3)
        self.assertEqual(solver.state, CycleState.TERMINATED)

    async def test_run_stops_quietly_when_browser_closed(self) -> None:
        page = FakePage()
        page.challenge.children[".prompt-text"].inner_text = AsyncMock(side_effect=closed_error())
        solver = self._solver(page)

        await solver.run()

        self.assertEqual(solver.state, CycleState.TERMINATED)

    async def test_run_propagates_unexpected_errors(self) -> None:
        page = FakePage()
        solver = self._solver(page)
        solver.solver_client.coordinates.side_effect = CaptchaServiceError("ERROR_WRONG_USER_KEY")

        with self.assertRaises(ChallengeSolveFailed):
            await solver.run()

    async def test_run_treats_errors_after_abort_as_termination(self) -> None:
        page = FakePage()
        solver = self._solver(page)

        async def fake_cycle(wait_for_images: bool = True):
            self.abort_event.set()
            raise RuntimeError("page navigated away")

        solver.run_cycle = fake_cycle
        await solver.run()

        self.assertEqual(solver.cycles, 1)


if __name__ == "__main__":
    unittest.main()
