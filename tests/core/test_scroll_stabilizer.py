"""
ScrollStabilizer 单元测试（用假会话代替浏览器）
"""
import asyncio
import unittest

from config import RendererConfig
from core.exceptions import RenderingError
from core.scroll_stabilizer import ScrollStabilizer


class HeightSession:
    """按预设序列返回页面高度"""

    def __init__(self, heights, fail_goto=False):
        self.heights = list(heights)
        self.fail_goto = fail_goto
        self.visited = []
        self.scrolls = 0

    async def goto(self, url):
        if self.fail_goto:
            raise RenderingError("navigation timeout")
        self.visited.append(url)

    async def scroll_to_bottom(self):
        self.scrolls += 1

    async def scroll_height(self):
        if len(self.heights) > 1:
            return self.heights.pop(0)
        return self.heights[0]


class TestScrollStabilizer(unittest.TestCase):
    def setUp(self):
        self.stabilizer = ScrollStabilizer(scroll_interval=0, max_scrolls=25)

    def test_stops_when_height_stable(self):
        session = HeightSession([1000, 2000, 2000])

        growth = asyncio.run(self.stabilizer.stabilize(session, "https://a.test"))

        self.assertEqual(session.visited, ["https://a.test"])
        self.assertEqual(growth, 2)
        self.assertEqual(session.scrolls, 3)

    def test_zero_height_page_stops_immediately(self):
        session = HeightSession([0])
        growth = asyncio.run(self.stabilizer.stabilize(session, "https://a.test"))
        self.assertEqual(growth, 0)
        self.assertEqual(session.scrolls, 1)

    def test_infinite_page_bounded_by_max_scrolls(self):
        stabilizer = ScrollStabilizer(scroll_interval=0, max_scrolls=5)
        session = HeightSession(range(100, 10000, 100))

        growth = asyncio.run(stabilizer.stabilize(session, "https://a.test"))

        self.assertEqual(growth, 5)
        self.assertEqual(session.scrolls, 6)

    def test_navigation_failure_propagates(self):
        session = HeightSession([0], fail_goto=True)
        with self.assertRaises(RenderingError):
            asyncio.run(self.stabilizer.stabilize(session, "https://a.test"))
        self.assertEqual(session.scrolls, 0)

    def test_from_config(self):
        stabilizer = ScrollStabilizer.from_config(RendererConfig(scroll_interval=0.1, max_scrolls=3))
        self.assertEqual(stabilizer.scroll_interval, 0.1)
        self.assertEqual(stabilizer.max_scrolls, 3)


if __name__ == "__main__":
    unittest.main()
