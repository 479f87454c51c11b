from pathlib import Path

import pytest


SAMPLE_IR = """\
; ModuleID = 'sample.c'
%struct.pair = type { i32, i32 }

@.str = private constant [4 x i8] c"%d;\\0A\\00"

declare i32 @printf(ptr, ...)

define i32 @foo(i32 noundef %a, i32 noundef %b) #0 {
entry:
  %add = add nsw i32 %a, %b
  %mul = mul nsw i32 %add, 2
  %cmp = icmp sgt i32 %mul, 0   ; positive?
  br i1 %cmp, label %then, label %done

then:                                             ; preds = %entry
  %call = call i32 (ptr, ...) @printf(ptr @.str, i32 %mul)
  call void asm sideeffect "nop; mov %eax", ""()
  br label %done

done:                                             ; preds = %then, %entry
  %r = phi i32 [ %mul, %entry ], [ 0, %then ]
  ret i32 %r
}
"""

CHAIN_IR = """\
define i32 @chain(i32 %a, i32 %b) {
entry:
  %c = add i32 %a, %b
  %d = mul i32 %c, 2
  ret i32 %d
}
"""

PAIRS_IR = """\
define void @pairs(ptr %p, ptr %q) {
entry:
  %x = add i32 1, 2
  %y = mul i32 3, 4
  store i32 %x, ptr %p
  store i32 %y, ptr %q
}
"""


@pytest.fixture
def sample_ir() -> str:
    return SAMPLE_IR


@pytest.fixture
def chain_ir() -> str:
    return CHAIN_IR


@pytest.fixture
def pairs_ir() -> str:
    return PAIRS_IR


@pytest.fixture
def write_ir(tmp_path: Path):
    def _write(text: str, name: str = "input.ll") -> Path:
        path = tmp_path / name
        path.write_text(text, "utf-8")
        return path

    return _write
